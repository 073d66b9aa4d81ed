"""Total ordering and band grouping for versions.

The numeric tuple decides first. With equal numbers a release sorts above
any prerelease, prereleases are ordered by an injectable PrereleaseOrder,
and build metadata breaks the remaining ties so that no two distinct
versions compare equal.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence

import semantic_version

from constants import Constants
from .models import FeatureBand, Version


@lru_cache(maxsize=1024)
def _semver_prerelease(prerelease: str) -> semantic_version.Version:
    """Wrap a prerelease tag in a semver so its identifiers compare per SemVer 2."""
    return semantic_version.Version(f"0.0.0-{prerelease}")


class PrereleaseOrder(ABC):
    """Orders prerelease tags of versions that share the same numeric part."""

    @abstractmethod
    def key(self, prerelease: str):
        """Sort key for a non-empty prerelease tag."""


class SemverPrereleaseOrder(PrereleaseOrder):
    """SemVer 2 precedence: dot-separated identifiers, numeric below alphanumeric."""

    def key(self, prerelease: str):
        return (_semver_prerelease(prerelease),)


class RankedPrereleaseOrder(SemverPrereleaseOrder):
    """Rank the leading label by a configured list, then fall back to SemVer.

    Labels not in the list rank below every listed label, so a vendor's
    custom tag never outranks a release candidate by accident.
    """

    def __init__(self, labels: Optional[Sequence[str]] = None):
        self._labels = None if labels is None else [str(label).lower() for label in labels]

    @property
    def labels(self) -> List[str]:
        if self._labels is not None:
            return self._labels
        return [str(label).lower() for label in Constants.PRERELEASE_LABELS]

    def rank(self, prerelease: str) -> int:
        label = prerelease.split(".", 1)[0].lower()
        try:
            return self.labels.index(label)
        except ValueError:
            return -1

    def key(self, prerelease: str):
        return (self.rank(prerelease),) + super().key(prerelease)


class VersionOrdering:
    """Total order over versions with an injectable prerelease convention."""

    def __init__(self, prerelease_order: Optional[PrereleaseOrder] = None):
        self.prerelease_order = prerelease_order or RankedPrereleaseOrder()

    def key(self, version: Version):
        if version.prerelease is None:
            pre = (1, ())
        else:
            pre = (0, self.prerelease_order.key(version.prerelease))
        build = (0, "") if version.build is None else (1, version.build)
        return (version.numeric, pre, build)

    def compare(self, a: Version, b: Version) -> int:
        ka, kb = self.key(a), self.key(b)
        return (ka > kb) - (ka < kb)

    def sort(self, versions: Iterable, reverse: bool = False, attr: Optional[str] = None) -> List:
        """Sort versions, or objects holding one under ``attr``."""
        if attr:
            return sorted(versions, key=lambda o: self.key(getattr(o, attr)), reverse=reverse)
        return sorted(versions, key=self.key, reverse=reverse)

    def highest(self, items: Iterable, attr: Optional[str] = None):
        ordered = self.sort(items, reverse=True, attr=attr)
        return ordered[0] if ordered else None

    def lowest(self, items: Iterable, attr: Optional[str] = None):
        ordered = self.sort(items, attr=attr)
        return ordered[0] if ordered else None


def same_feature_band(a: Version, b: Version) -> bool:
    """True iff major, minor and band are equal."""
    return a.feature_band == b.feature_band


def band_floor(band: FeatureBand) -> Version:
    """The lowest release version of a feature band (e.g. 8.0.100)."""
    return Version(band.major, band.minor, band.band, 0)


DEFAULT_ORDERING = VersionOrdering()
