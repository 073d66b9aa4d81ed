"""Tests for the total version order and injectable prerelease conventions."""

import random

import pytest

from versioning.models import FeatureBand
from versioning.ordering import (
    DEFAULT_ORDERING,
    PrereleaseOrder,
    RankedPrereleaseOrder,
    SemverPrereleaseOrder,
    VersionOrdering,
    band_floor,
    same_feature_band,
)
from versioning.parser import parse_version


def _sorted(texts, ordering=DEFAULT_ORDERING):
    return [str(v) for v in ordering.sort(parse_version(t) for t in texts)]


class TestDefaultOrdering:
    """Numeric first, then release over prerelease, then build metadata."""

    def test_numeric_order(self):
        """Bands and patches compare numerically, not lexically."""
        assert _sorted(["2.1.601", "2.1.505", "2.1.503", "2.1.1000"]) == [
            "2.1.503", "2.1.505", "2.1.601", "2.1.1000",
        ]

    def test_release_above_prerelease(self):
        """A release outranks any prerelease of the same numbers."""
        assert _sorted(["9.0.100", "9.0.100-rc.1", "9.0.100-preview.7"]) == [
            "9.0.100-preview.7", "9.0.100-rc.1", "9.0.100",
        ]

    def test_ranked_labels_override_lexical_order(self):
        """Labels follow the configured alpha, beta, preview, rc ranking."""
        assert _sorted(["9.0.100-rc.1", "9.0.100-beta.2", "9.0.100-preview.1", "9.0.100-alpha.9"]) == [
            "9.0.100-alpha.9", "9.0.100-beta.2", "9.0.100-preview.1", "9.0.100-rc.1",
        ]

    def test_unknown_labels_rank_lowest(self):
        """A custom label never outranks a listed one."""
        assert _sorted(["9.0.100-alpha.1", "9.0.100-zzz.1"]) == ["9.0.100-zzz.1", "9.0.100-alpha.1"]

    def test_numeric_prerelease_identifiers(self):
        """preview.10 is above preview.9."""
        assert _sorted(["9.0.100-preview.10", "9.0.100-preview.9"]) == [
            "9.0.100-preview.9", "9.0.100-preview.10",
        ]

    def test_build_metadata_breaks_ties(self):
        """Distinct versions never compare equal in the order."""
        a, b, c = parse_version("8.0.100"), parse_version("8.0.100+b"), parse_version("8.0.100+a")
        assert DEFAULT_ORDERING.compare(a, b) < 0
        assert DEFAULT_ORDERING.compare(c, b) < 0
        assert DEFAULT_ORDERING.compare(a, parse_version("8.0.100.0")) == 0

    def test_order_is_total_and_stable(self):
        """Shuffled input always sorts to the same sequence."""
        texts = ["8.0.100", "8.0.101", "8.0.200-rc.1", "8.0.200", "9.0.100-preview.1", "8.0.201.1"]
        expected = _sorted(texts)
        for seed in range(5):
            shuffled = list(texts)
            random.Random(seed).shuffle(shuffled)
            assert _sorted(shuffled) == expected

    def test_version_comparison_operators(self):
        """Version supports < and > through the default ordering."""
        assert parse_version("8.0.100") < parse_version("8.0.101")
        assert parse_version("8.0.200") > parse_version("8.0.200-rc.1")


class TestInjectedOrdering:
    """Prerelease ordering is a plug-in."""

    def test_semver_order_is_lexical_on_labels(self):
        """Plain SemVer compares labels lexically, so an unlisted label can win."""
        semver = VersionOrdering(SemverPrereleaseOrder())
        assert _sorted(["9.0.100-zzz.1", "9.0.100-alpha.1"], semver) == ["9.0.100-alpha.1", "9.0.100-zzz.1"]

    def test_custom_ranking(self):
        """A vendor ranking can put 'rc' below 'preview'."""
        custom = VersionOrdering(RankedPrereleaseOrder(["rc", "preview"]))
        assert _sorted(["9.0.100-preview.1", "9.0.100-rc.1"], custom) == ["9.0.100-rc.1", "9.0.100-preview.1"]

    def test_highest_and_lowest(self):
        """Helpers pick the ends of the order."""
        versions = [parse_version(t) for t in ("8.0.100", "8.0.300", "8.0.200")]
        assert str(DEFAULT_ORDERING.highest(versions)) == "8.0.300"
        assert str(DEFAULT_ORDERING.lowest(versions)) == "8.0.100"
        assert DEFAULT_ORDERING.highest([]) is None
        assert DEFAULT_ORDERING.lowest([]) is None

    def test_lowest_by_attribute(self, make_installed):
        """lowest reads the version from an attribute when asked to."""
        items = [make_installed(v) for v in ("8.0.204", "8.0.101-preview.1", "8.0.101")]
        assert str(DEFAULT_ORDERING.lowest(items, attr="version")) == "8.0.101-preview.1"

    def test_prerelease_order_is_abstract(self):
        """A convention has to say how it orders tags."""
        with pytest.raises(TypeError):
            PrereleaseOrder()


class TestBandHelpers:
    """Feature band grouping."""

    def test_same_feature_band(self):
        """Patches of one band share it; the next band does not."""
        assert same_feature_band(parse_version("8.0.201"), parse_version("8.0.299"))
        assert not same_feature_band(parse_version("8.0.199"), parse_version("8.0.201"))

    def test_band_floor(self):
        """The floor of band 8.0.2xx is 8.0.200."""
        assert str(band_floor(FeatureBand(8, 0, 2))) == "8.0.200"
