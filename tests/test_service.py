"""Tests for the resolvers and the resolution service."""

import pytest

from constants import ComponentKinds, Constants
from versioning.catalog import VersionCatalog
from versioning.config_resolver import LAYER_COMMAND_LINE, ConfigLayer, merge_layers
from versioning.errors import NoCandidateError, ParseError
from versioning.models import PinRecord, RollForwardMode
from versioning.parser import parse_manifest_ref, parse_version
from versioning.pinstore import PinStore
from versioning.resolvers import (
    RuntimeVersionResolver,
    SdkVersionResolver,
    WorkloadSetVersionResolver,
)
from versioning.service import VersionResolutionService


def _request(kind=ComponentKinds.SDK, version=None, mode=None, allow=None):
    mode_value = RollForwardMode(mode) if mode else None
    return merge_layers([ConfigLayer(LAYER_COMMAND_LINE, version, mode_value, allow)], kind)


@pytest.fixture
def service(install_root, state_dir):
    """Service over a fake install root with a pin store."""
    return VersionResolutionService(VersionCatalog(install_root.root), PinStore(state_dir, lock_timeout=0.2))


class TestSdkAndRuntime:
    """Plain resolver paths."""

    def test_sdk_latest_patch_default(self, install_root, service):
        """A version without a mode uses latestPatch for SDKs."""
        for v in ["8.0.100", "8.0.201", "8.0.204", "8.0.300"]:
            install_root.sdk(v)
        result = service.resolve(_request(version="8.0.201"))
        assert str(result.resolved_version) == "8.0.204"
        assert result.source == "engine"
        assert result.candidate_count == 4

    def test_sdk_no_version_takes_latest(self, install_root, service):
        """No configuration at all binds to the newest SDK."""
        for v in ["8.0.100", "9.0.100"]:
            install_root.sdk(v)
        result = service.resolve(_request())
        assert str(result.resolved_version) == "9.0.100"
        assert result.requested is None

    def test_runtime_default_minor(self, install_root, service):
        """Runtime requests roll to the highest patch of the nearest minor."""
        for v in ["8.0.1", "8.0.11", "9.0.0"]:
            install_root.runtime(v)
        result = service.resolve(_request(ComponentKinds.RUNTIME, "8.0.0"))
        assert str(result.resolved_version) == "8.0.11"
        assert result.component_id == Constants.DEFAULT_FRAMEWORK

    def test_runtime_other_framework(self, install_root, service):
        """Frameworks are resolved independently."""
        install_root.runtime("8.0.5", framework="Microsoft.AspNetCore.App")
        install_root.runtime("8.0.9")
        result = service.resolve(_request(ComponentKinds.RUNTIME, "8.0.0"), component_id="Microsoft.AspNetCore.App")
        assert str(result.resolved_version) == "8.0.5"

    def test_no_candidate_propagates(self, install_root, service):
        """Failures are never defaulted to some other version."""
        install_root.sdk("8.0.100")
        with pytest.raises(NoCandidateError):
            service.resolve(_request(version="8.0.201", mode="disable"))

    def test_resolver_kinds(self, install_root):
        """Each resolver reports its kind."""
        catalog = VersionCatalog(install_root.root)
        assert SdkVersionResolver(catalog).kind is ComponentKinds.SDK
        assert RuntimeVersionResolver(catalog).component_id == Constants.DEFAULT_FRAMEWORK
        assert WorkloadSetVersionResolver(catalog, "8.0.100").kind is ComponentKinds.WORKLOAD_SET


class TestPins:
    """Pins win over roll-forward."""

    def test_pin_overrides_roll_forward(self, install_root, service, tmp_path):
        """A pinned scope binds to the pinned version even when newer ones exist."""
        for v in ["8.0.201", "8.0.204"]:
            install_root.sdk(v)
        scope = str(tmp_path / "repo")
        service.pins.set(scope, PinRecord(parse_version("8.0.201"), scope))
        result = service.resolve(_request(version="8.0.201"), scope=scope)
        assert str(result.resolved_version) == "8.0.201"
        assert result.source == "pin"

    def test_pinned_but_missing(self, install_root, service, tmp_path):
        """A pin to something not installed fails with a hint to clear it."""
        install_root.sdk("8.0.204")
        scope = str(tmp_path / "repo")
        service.pins.set(scope, PinRecord(parse_version("8.0.201"), scope))
        with pytest.raises(NoCandidateError) as exc:
            service.resolve(_request(), scope=scope)
        assert "pin clear" in exc.value.hint

    def test_pin_of_other_kind_is_ignored(self, install_root, service, tmp_path):
        """A runtime pin does not affect SDK resolution."""
        install_root.sdk("8.0.100")
        scope = str(tmp_path / "repo")
        service.pins.set(scope, PinRecord(parse_version("8.0.1"), scope, {}, ComponentKinds.RUNTIME))
        result = service.resolve(_request(), scope=scope)
        assert result.source == "engine"

    def test_runtime_pin_uses_plain_versions(self, install_root, service, tmp_path):
        """Runtime pins find runtime installs."""
        install_root.runtime("8.0.1")
        install_root.runtime("8.0.11")
        scope = str(tmp_path / "repo")
        service.pins.set(scope, PinRecord(parse_version("8.0.1"), scope, {}, ComponentKinds.RUNTIME))
        result = service.resolve(_request(ComponentKinds.RUNTIME, "8.0.0"), scope=scope)
        assert str(result.resolved_version) == "8.0.1"


class TestWorkloadSets:
    """Workload set and loose manifest resolution."""

    def test_latest_set_of_band(self, install_root, service):
        """Without a pin the newest set of the band is used as one unit."""
        install_root.workload_set("8.0.200", "8.0.201", {"android": "34.0.43/8.0.100"})
        install_root.workload_set("8.0.200", "8.0.203", {"android": "34.0.80/8.0.200"})
        install_root.workload_set("8.0.300", "8.0.300", {"android": "35.0.1/8.0.300"})
        result = service.resolve(_request(ComponentKinds.WORKLOAD_SET), band="8.0.200")
        assert str(result.resolved_version) == "8.0.203"
        assert result.source == "workload-set"
        assert str(result.manifests["android"]) == "34.0.80/8.0.200"

    def test_pinned_set_with_manifest_override(self, install_root, service):
        """A band pin selects its set and replaces individual manifests."""
        install_root.workload_set("8.0.200", "8.0.201", {"android": "34.0.43/8.0.100", "ios": "17.0.1/8.0.100"})
        install_root.workload_set("8.0.200", "8.0.203", {"android": "34.0.80/8.0.200", "ios": "17.2.8/8.0.200"})
        service.pins.set("8.0.200", PinRecord(
            parse_version("8.0.201"), "8.0.200",
            {"Android": parse_manifest_ref("34.0.50/8.0.200")}, ComponentKinds.WORKLOAD_SET,
        ))
        result = service.resolve(_request(ComponentKinds.WORKLOAD_SET), band="8.0.200")
        assert str(result.resolved_version) == "8.0.201"
        assert result.source == "pin"
        assert {k.lower(): str(v) for k, v in result.manifests.items()} == {
            "android": "34.0.50/8.0.200",
            "ios": "17.0.1/8.0.100",
        }

    def test_explicit_version_sets_band(self, install_root, service):
        """An explicit workload set version implies its band."""
        install_root.workload_set("8.0.200", "8.0.201", {})
        install_root.workload_set("8.0.200", "8.0.203", {})
        result = service.resolve(_request(ComponentKinds.WORKLOAD_SET, "8.0.201", "disable"))
        assert str(result.resolved_version) == "8.0.201"

    def test_manifest_mode_without_sets(self, install_root, service):
        """Without any set, each manifest takes the nearest band at or below the requested one."""
        install_root.manifest("8.0.100", "android", "34.0.43")
        install_root.manifest("8.0.100", "android", "34.0.45")
        install_root.manifest("8.0.200", "ios", "17.2.8")
        install_root.manifest("8.0.300", "android", "35.0.1")
        install_root.manifest("9.0.100", "maui", "9.0.0")
        result = service.resolve(_request(ComponentKinds.WORKLOAD_SET), band="8.0.200")
        assert result.source == "manifests"
        assert result.resolved is None
        assert {k: str(v) for k, v in result.manifests.items()} == {
            "android": "34.0.45/8.0.100",
            "ios": "17.2.8/8.0.200",
        }

    def test_band_required(self, service):
        """Workload set resolution needs a band."""
        with pytest.raises(ParseError):
            service.resolve(_request(ComponentKinds.WORKLOAD_SET))

    def test_pinned_set_not_installed(self, install_root, service):
        """A band pinned to a removed set fails loudly."""
        install_root.workload_set("8.0.200", "8.0.203", {})
        service.pins.set("8.0.200", PinRecord(parse_version("8.0.201"), "8.0.200", {}, ComponentKinds.WORKLOAD_SET))
        with pytest.raises(NoCandidateError):
            service.resolve(_request(ComponentKinds.WORKLOAD_SET), band="8.0.200")
