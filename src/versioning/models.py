"""Data models for versioning and install resolution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from functools import total_ordering
from typing import Dict, Iterator, List, Optional, Tuple

from constants import ComponentKinds


class VersionScheme(Enum):
    """How the third numeric component of a version string is read."""
    BANDED = "banded"  # SDKs, manifests, workload sets: third = band * 100 + patch
    PLAIN = "plain"  # runtimes: third = patch


class RollForwardMode(Enum):
    """Roll-forward policy; exactly one is active per resolution."""
    DISABLE = "disable"
    PATCH = "patch"
    LATEST_PATCH = "latestPatch"
    FEATURE = "feature"
    LATEST_FEATURE = "latestFeature"
    MINOR = "minor"
    LATEST_MINOR = "latestMinor"
    MAJOR = "major"
    LATEST_MAJOR = "latestMajor"

    @property
    def is_latest(self) -> bool:
        return self in (
            RollForwardMode.LATEST_PATCH,
            RollForwardMode.LATEST_FEATURE,
            RollForwardMode.LATEST_MINOR,
            RollForwardMode.LATEST_MAJOR,
        )

    @property
    def tier(self) -> int:
        """0 = exact, 1 = patch, 2 = feature, 3 = minor, 4 = major."""
        return _MODE_TIERS[self]


_MODE_TIERS = {
    RollForwardMode.DISABLE: 0,
    RollForwardMode.PATCH: 1,
    RollForwardMode.LATEST_PATCH: 1,
    RollForwardMode.FEATURE: 2,
    RollForwardMode.LATEST_FEATURE: 2,
    RollForwardMode.MINOR: 3,
    RollForwardMode.LATEST_MINOR: 3,
    RollForwardMode.MAJOR: 4,
    RollForwardMode.LATEST_MAJOR: 4,
}


@dataclass(frozen=True, order=True)
class FeatureBand:
    """The (major, minor, band) prefix grouping one release train."""
    major: int
    minor: int
    band: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.band * 100}"


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A 3-or-4-part non-semver version with optional prerelease and build tags.

    Equality and hashing follow precedence: a missing sub-patch equals 0,
    and the scheme only affects how the version is spelled. Ordering uses
    the default VersionOrdering; pass an explicit ordering to the engine
    to inject another prerelease convention.
    """
    major: int
    minor: int
    band: int
    patch: int
    subpatch: Optional[int] = None
    prerelease: Optional[str] = None
    build: Optional[str] = None
    scheme: VersionScheme = VersionScheme.BANDED

    @property
    def numeric(self) -> Tuple[int, int, int, int, int]:
        return (self.major, self.minor, self.band, self.patch, self.subpatch or 0)

    @property
    def feature_band(self) -> FeatureBand:
        return FeatureBand(self.major, self.minor, self.band)

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def release(self) -> "Version":
        """Return the same numeric version without prerelease or build tags."""
        return replace(self, prerelease=None, build=None)

    def __str__(self) -> str:
        third = self.band * 100 + self.patch if self.scheme == VersionScheme.BANDED else self.patch
        text = f"{self.major}.{self.minor}.{third}"
        if self.subpatch is not None:
            text += f".{self.subpatch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text

    def _identity(self):
        return (self.numeric, self.prerelease, self.build)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __lt__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        from .ordering import DEFAULT_ORDERING  # pylint: disable=import-outside-toplevel
        return DEFAULT_ORDERING.key(self) < DEFAULT_ORDERING.key(other)


@dataclass(frozen=True)
class ManifestRef:
    """A manifest version together with the feature band that owns it."""
    version: Version
    band: FeatureBand

    def __str__(self) -> str:
        return f"{self.version}/{self.band}"


@dataclass(frozen=True)
class InstalledVersion:
    """One installed version of a component, as found on disk."""
    kind: ComponentKinds
    component_id: str
    version: Version
    path: str
    owning_band: Optional[FeatureBand] = None
    baseline: bool = False

    @property
    def band(self) -> FeatureBand:
        """Band used for grouping: the owning band when known, else the version's own."""
        return self.owning_band or self.version.feature_band


class InstalledVersionSet:
    """Immutable, ordered set of installed versions of one component kind."""

    def __init__(self, kind: ComponentKinds, items=()):
        from .ordering import DEFAULT_ORDERING  # pylint: disable=import-outside-toplevel
        self.kind = kind
        self._items: Tuple[InstalledVersion, ...] = tuple(sorted(
            items,
            key=lambda i: (i.component_id.lower(), i.band, DEFAULT_ORDERING.key(i.version)),
        ))

    def __iter__(self) -> Iterator[InstalledVersion]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"InstalledVersionSet({self.kind.value}, {[str(i.version) for i in self._items]})"

    def versions(self) -> List[Version]:
        return [i.version for i in self._items]

    def components(self) -> List[str]:
        seen: Dict[str, None] = {}
        for item in self._items:
            seen.setdefault(item.component_id, None)
        return list(seen)

    def bands(self) -> List[FeatureBand]:
        return sorted({i.band for i in self._items})

    def for_component(self, component_id: str) -> "InstalledVersionSet":
        wanted = component_id.lower()
        return InstalledVersionSet(self.kind, [i for i in self._items if i.component_id.lower() == wanted])

    def for_band(self, band: FeatureBand) -> "InstalledVersionSet":
        return InstalledVersionSet(self.kind, [i for i in self._items if i.band == band])

    def find(self, version: Version) -> Optional[InstalledVersion]:
        for item in self._items:
            if item.version == version:
                return item
        return None


@dataclass(frozen=True)
class ResolutionRequest:
    """Effective request after configuration layering."""
    requested_version: Version
    roll_forward: RollForwardMode
    allow_prerelease: bool
    kind: ComponentKinds = ComponentKinds.SDK
    explicit_version: bool = True
    sources: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class ResolutionResult:
    """Resolution outcome fed to the CLI and to pinning."""
    kind: ComponentKinds
    component_id: str
    requested: Optional[Version]
    roll_forward: RollForwardMode
    resolved: Optional[InstalledVersion]
    candidate_count: int
    source: str  # "engine" | "pin" | "workload-set" | "manifests"
    manifests: Dict[str, ManifestRef] = field(default_factory=dict)

    @property
    def resolved_version(self) -> Optional[Version]:
        return self.resolved.version if self.resolved else None


@dataclass(frozen=True)
class PinRecord:
    """A persisted selection for one scope.

    Presence means "do not roll forward automatically"; absence means
    "use latest per policy".
    """
    version: Version
    source_scope: str
    manifests: Dict[str, ManifestRef] = field(default_factory=dict, hash=False)
    kind: Optional[ComponentKinds] = None


@dataclass(frozen=True)
class WorkloadSet:
    """An atomically versioned mapping of manifest id to manifest version and band."""
    version: Version
    manifests: Dict[str, ManifestRef] = field(hash=False)
    path: str = ""
    baseline: bool = False

    def references(self, manifest_id: str, version: Version, band: FeatureBand) -> bool:
        ref = _lookup_ci(self.manifests, manifest_id)
        return ref is not None and ref.version == version and ref.band == band


def _lookup_ci(mapping: Dict[str, ManifestRef], key: str) -> Optional[ManifestRef]:
    wanted = key.lower()
    for k, v in mapping.items():
        if k.lower() == wanted:
            return v
    return None
