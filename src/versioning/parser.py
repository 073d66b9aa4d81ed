"""Token parsing utilities for versions, feature bands and roll-forward modes.

Every parser here fails closed with ParseError; nothing is truncated or
defaulted silently.
"""

import re
from typing import Optional, Tuple

import semantic_version

from constants import ComponentKinds

from .errors import ParseError
from .models import FeatureBand, ManifestRef, RollForwardMode, Version, VersionScheme

_VERSION_RE = re.compile(
    r"^(?P<nums>\d+(?:\.\d+){1,3})"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
_BAND_WILDCARD_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)xx$", re.IGNORECASE)

_MODES_BY_NAME = {m.value.lower(): m for m in RollForwardMode}
_LEGACY_MODES = {
    0: RollForwardMode.LATEST_PATCH,
    1: RollForwardMode.MINOR,
    2: RollForwardMode.MAJOR,
}
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def tokenize_rightmost(s: str, sep: str) -> Tuple[str, Optional[str]]:
    """Return (head, tail or None) split on the rightmost separator."""
    s = s.strip()
    if sep not in s:
        return s, None
    head, tail = s.rsplit(sep, 1)
    tail = tail.strip()
    return head.strip(), tail if tail else None


def _parse_component(raw: str, text: str) -> int:
    if len(raw) > 1 and raw.startswith("0"):
        raise ParseError(f"Invalid version '{text}': leading zero in '{raw}'")
    return int(raw)


def _check_prerelease(pre: str, text: str) -> None:
    try:
        semantic_version.Version(f"0.0.0-{pre}")
    except ValueError as exc:
        raise ParseError(f"Invalid prerelease tag in version '{text}': {exc}") from exc


def _check_build(build: str, text: str) -> None:
    if any(not part for part in build.split(".")):
        raise ParseError(f"Invalid build metadata in version '{text}'")


def parse_version(text, scheme: VersionScheme = VersionScheme.BANDED) -> Version:
    """Parse a 2-to-4 part version string.

    Args:
        text: Version text such as ``8.0.201``, ``8.0.201.1`` or
            ``9.0.100-preview.7.24407.12``.
        scheme: BANDED reads the third component as ``band * 100 + patch``;
            PLAIN reads it as the patch with band 0.

    Raises:
        ParseError: on any malformed input.
    """
    if isinstance(text, Version):
        return text
    if text is None or not isinstance(text, str) or not text.strip():
        raise ParseError(f"Invalid version {text!r}: empty")
    raw = text.strip()
    m = _VERSION_RE.match(raw)
    if not m:
        raise ParseError(f"Invalid version '{raw}'")

    nums = [_parse_component(p, raw) for p in m.group("nums").split(".")]
    while len(nums) < 3:
        nums.append(0)
    major, minor, third = nums[0], nums[1], nums[2]
    subpatch = nums[3] if len(nums) > 3 else None

    pre = m.group("pre")
    build = m.group("build")
    if pre is not None:
        _check_prerelease(pre, raw)
    if build is not None:
        _check_build(build, raw)

    if scheme == VersionScheme.BANDED:
        band, patch = divmod(third, 100)
    else:
        band, patch = 0, third
    return Version(major, minor, band, patch, subpatch, pre, build, scheme)


def parse_feature_band(text) -> FeatureBand:
    """Parse ``8.0.100`` or ``8.0.1xx`` into a FeatureBand."""
    if isinstance(text, FeatureBand):
        return text
    raw = str(text or "").strip()
    m = _BAND_WILDCARD_RE.match(raw)
    if m:
        return FeatureBand(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    version = parse_version(raw)
    if version.patch or version.subpatch or version.prerelease or version.build:
        raise ParseError(f"Invalid feature band '{raw}': expected a form like 8.0.100")
    return version.feature_band


def parse_roll_forward(text) -> RollForwardMode:
    """Parse a roll-forward mode name, case-insensitively."""
    if isinstance(text, RollForwardMode):
        return text
    key = str(text or "").strip().lower()
    mode = _MODES_BY_NAME.get(key)
    if mode is None:
        valid = ", ".join(m.value for m in RollForwardMode)
        raise ParseError(f"Invalid roll-forward mode '{text}'; expected one of: {valid}")
    return mode


def parse_legacy_roll_forward(value, apply_patches: bool = True) -> RollForwardMode:
    """Map the legacy rollForwardOnNoCandidateFx (+ applyPatches) pair to a mode.

    0 rolls patches only, or nothing at all when applyPatches is false.
    """
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid rollForwardOnNoCandidateFx value '{value}'") from exc
    if number not in _LEGACY_MODES:
        raise ParseError(f"Invalid rollForwardOnNoCandidateFx value '{value}': expected 0, 1 or 2")
    if number == 0 and not apply_patches:
        return RollForwardMode.DISABLE
    return _LEGACY_MODES[number]


def parse_bool(value, setting: str) -> bool:
    """Parse a boolean setting from YAML, JSON or an environment string."""
    if isinstance(value, bool):
        return value
    key = str(value).strip().lower()
    if key in _TRUE:
        return True
    if key in _FALSE:
        return False
    raise ParseError(f"Invalid boolean for {setting}: '{value}'")


def parse_manifest_ref(text) -> ManifestRef:
    """Parse ``<version>/<band>``, the form used in workload set and pin files."""
    if isinstance(text, ManifestRef):
        return text
    version_part, band_part = tokenize_rightmost(str(text or ""), "/")
    if band_part is None:
        raise ParseError(f"Invalid manifest reference '{text}': expected <version>/<band>")
    return ManifestRef(parse_version(version_part), parse_feature_band(band_part))


def parse_manifest_assignment(token: str) -> Tuple[str, ManifestRef]:
    """Parse a CLI ``<manifest-id>=<version>/<band>`` token."""
    manifest_id, ref = tokenize_rightmost(token, "=")
    if ref is None or not manifest_id:
        raise ParseError(f"Invalid manifest pin '{token}': expected <id>=<version>/<band>")
    return manifest_id, parse_manifest_ref(ref)


def scheme_for(kind: ComponentKinds) -> VersionScheme:
    """Runtimes number patches directly; every other kind carries a feature band."""
    if kind == ComponentKinds.RUNTIME:
        return VersionScheme.PLAIN
    return VersionScheme.BANDED
