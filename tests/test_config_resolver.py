"""Tests for layered configuration merging."""

import json

import pytest

from constants import ComponentKinds, Constants
from versioning.config_resolver import (
    LAYER_COMMAND_LINE,
    LAYER_ENVIRONMENT,
    LAYER_FILE,
    ConfigLayer,
    ConfigurationResolver,
    cli_layer,
    find_config_file,
    merge_layers,
    read_env_layer,
    read_file_layer,
)
from versioning.errors import ConfigurationConflictError, ParseError
from versioning.models import RollForwardMode


def _write(path, data):
    path.write_text(json.dumps(data) if isinstance(data, dict) else data, encoding="utf-8")
    return str(path)


class TestFileLayer:
    """global.json style documents."""

    def test_sdk_section(self, tmp_path):
        """Settings under 'sdk' are read, keys case-insensitively."""
        path = _write(tmp_path / "global.json",
                      {"sdk": {"Version": "8.0.100", "rollForward": "latestFeature", "allowPrerelease": False}})
        layer = read_file_layer(path)
        assert layer.version == "8.0.100"
        assert layer.roll_forward is RollForwardMode.LATEST_FEATURE
        assert layer.allow_prerelease is False

    def test_top_level_yaml(self, tmp_path):
        """YAML with top-level keys works too."""
        path = _write(tmp_path / "dotbind.yml", 'version: "8.0.200"\nrollForward: patch\n')
        layer = read_file_layer(path)
        assert layer.version == "8.0.200"
        assert layer.roll_forward is RollForwardMode.PATCH

    def test_runtime_section(self, tmp_path):
        """Runtime settings live under runtimeOptions."""
        path = _write(tmp_path / "global.json",
                      {"sdk": {"version": "8.0.100"}, "runtimeOptions": {"version": "8.0.1", "rollForward": "major"}})
        layer = read_file_layer(path, ComponentKinds.RUNTIME)
        assert layer.version == "8.0.1"
        assert layer.roll_forward is RollForwardMode.MAJOR

    def test_legacy_settings(self, tmp_path):
        """rollForwardOnNoCandidateFx and applyPatches still work alone."""
        path = _write(tmp_path / "global.json",
                      {"sdk": {"version": "8.0.100", "rollForwardOnNoCandidateFx": 0, "applyPatches": False}})
        assert read_file_layer(path).roll_forward is RollForwardMode.DISABLE

    def test_legacy_and_current_conflict(self, tmp_path):
        """Both spellings in one layer are contradictory."""
        path = _write(tmp_path / "global.json",
                      {"sdk": {"version": "8.0.100", "rollForward": "major", "rollForwardOnNoCandidateFx": 2}})
        with pytest.raises(ConfigurationConflictError):
            read_file_layer(path)

    def test_missing_file_is_empty(self, tmp_path):
        """No file, no settings."""
        assert read_file_layer(str(tmp_path / "absent.json")).is_empty
        assert read_file_layer(None).is_empty

    def test_unparsable_file(self, tmp_path):
        """Broken documents are parse errors."""
        path = _write(tmp_path / "global.json", "sdk: [unclosed")
        with pytest.raises(ParseError):
            read_file_layer(path)

    def test_unquoted_numeric_version(self, tmp_path):
        """A YAML float is not silently turned into a version."""
        path = _write(tmp_path / "dotbind.yml", "version: 8.0\n")
        with pytest.raises(ParseError):
            read_file_layer(path)

    def test_unknown_fields_ignored(self, tmp_path):
        """Extra keys do not matter."""
        path = _write(tmp_path / "global.json", {"sdk": {"version": "8.0.100", "paths": ["x"]}, "msbuild-sdks": {}})
        assert read_file_layer(path).version == "8.0.100"


class TestEnvAndCliLayers:
    """Environment and command-line layers."""

    def test_env_layer(self):
        """DOTBIND_* variables form the environment layer."""
        layer = read_env_layer({
            Constants.ENV_VERSION: "8.0.100",
            Constants.ENV_ROLL_FORWARD: "minor",
            Constants.ENV_ALLOW_PRERELEASE: "false",
        })
        assert layer.name == LAYER_ENVIRONMENT
        assert layer.version == "8.0.100"
        assert layer.roll_forward is RollForwardMode.MINOR
        assert layer.allow_prerelease is False

    def test_empty_env_values_are_unset(self):
        """Blank variables do not count."""
        assert read_env_layer({Constants.ENV_VERSION: "  "}).is_empty

    def test_env_legacy_conflict(self):
        """Legacy and current roll-forward variables together conflict."""
        with pytest.raises(ConfigurationConflictError):
            read_env_layer({Constants.ENV_ROLL_FORWARD: "minor", Constants.ENV_ROLL_FORWARD_LEGACY: "1"})

    def test_cli_layer(self):
        """Flags map onto a command-line layer."""
        layer = cli_layer("8.0.100", None, True, "2")
        assert layer.name == LAYER_COMMAND_LINE
        assert layer.roll_forward is RollForwardMode.MAJOR
        assert layer.allow_prerelease is True


class TestMerge:
    """Precedence between layers."""

    def test_policy_flows_up_past_version_only_override(self):
        """CLI version + file latestFeature yields latestFeature."""
        request = merge_layers([
            ConfigLayer(LAYER_FILE, version="8.0.100", roll_forward=RollForwardMode.LATEST_FEATURE),
            ConfigLayer(LAYER_ENVIRONMENT),
            ConfigLayer(LAYER_COMMAND_LINE, version="8.0.300"),
        ])
        assert str(request.requested_version) == "8.0.300"
        assert request.roll_forward is RollForwardMode.LATEST_FEATURE
        assert request.sources == {"version": LAYER_COMMAND_LINE, "rollForward": LAYER_FILE,
                                   "allowPrerelease": "default"}

    def test_policy_does_not_flow_up_when_cli_sets_mode(self):
        """A CLI version and mode replace the pair."""
        request = merge_layers([
            ConfigLayer(LAYER_FILE, version="8.0.100", roll_forward=RollForwardMode.LATEST_FEATURE),
            ConfigLayer(LAYER_COMMAND_LINE, version="8.0.300", roll_forward=RollForwardMode.DISABLE),
        ])
        assert str(request.requested_version) == "8.0.300"
        assert request.roll_forward is RollForwardMode.DISABLE

    def test_policy_only_override_keeps_lower_version(self):
        """An environment mode without a version keeps the file's version."""
        request = merge_layers([
            ConfigLayer(LAYER_FILE, version="8.0.100"),
            ConfigLayer(LAYER_ENVIRONMENT, roll_forward=RollForwardMode.MAJOR),
        ])
        assert str(request.requested_version) == "8.0.100"
        assert request.roll_forward is RollForwardMode.MAJOR
        assert request.sources["version"] == LAYER_FILE

    def test_policy_only_override_keeps_version_for_workload_sets(self):
        """The same retention applies to workload set requests."""
        request = merge_layers([
            ConfigLayer(LAYER_FILE, version="8.0.201"),
            ConfigLayer(LAYER_COMMAND_LINE, roll_forward=RollForwardMode.DISABLE),
        ], ComponentKinds.WORKLOAD_SET)
        assert str(request.requested_version) == "8.0.201"
        assert request.roll_forward is RollForwardMode.DISABLE

    def test_no_version_defaults_to_latest_major(self):
        """Without any version the floor is 0.0.0 and the mode latestMajor."""
        request = merge_layers([ConfigLayer(LAYER_FILE)])
        assert request.requested_version.numeric == (0, 0, 0, 0, 0)
        assert request.roll_forward is RollForwardMode.LATEST_MAJOR
        assert request.explicit_version is False

    def test_version_without_policy_uses_kind_default(self):
        """SDK defaults to latestPatch, runtime to minor."""
        sdk = merge_layers([ConfigLayer(LAYER_FILE, version="8.0.100")])
        runtime = merge_layers([ConfigLayer(LAYER_FILE, version="8.0.1")], ComponentKinds.RUNTIME)
        assert sdk.roll_forward is RollForwardMode.LATEST_PATCH
        assert runtime.roll_forward is RollForwardMode.MINOR
        assert sdk.sources["rollForward"] == "default"

    def test_mode_without_version_conflicts(self):
        """Only latestMajor is meaningful without a floor."""
        with pytest.raises(ConfigurationConflictError):
            merge_layers([ConfigLayer(LAYER_COMMAND_LINE, roll_forward=RollForwardMode.PATCH)])
        request = merge_layers([ConfigLayer(LAYER_COMMAND_LINE, roll_forward=RollForwardMode.LATEST_MAJOR)])
        assert request.roll_forward is RollForwardMode.LATEST_MAJOR

    def test_allow_prerelease_independent(self):
        """The highest layer setting allowPrerelease wins; a prerelease request forces it on."""
        request = merge_layers([
            ConfigLayer(LAYER_FILE, version="8.0.100", allow_prerelease=True),
            ConfigLayer(LAYER_ENVIRONMENT, allow_prerelease=False),
        ])
        assert request.allow_prerelease is False
        assert request.sources["allowPrerelease"] == LAYER_ENVIRONMENT
        forced = merge_layers([ConfigLayer(LAYER_FILE, version="9.0.100-rc.1", allow_prerelease=False)])
        assert forced.allow_prerelease is True

    def test_default_allow_prerelease_from_constants(self, monkeypatch):
        """The default comes from the tool configuration."""
        monkeypatch.setattr(Constants, "DEFAULT_ALLOW_PRERELEASE", False)
        assert merge_layers([ConfigLayer(LAYER_FILE, version="8.0.100")]).allow_prerelease is False

    def test_bad_version_is_parse_error(self):
        """Malformed versions surface as ParseError."""
        with pytest.raises(ParseError):
            merge_layers([ConfigLayer(LAYER_COMMAND_LINE, version="8.x")])


class TestResolverFacade:
    """ConfigurationResolver gathers the three layers."""

    def test_layers_in_order(self, tmp_path):
        """file, environment, command line."""
        path = _write(tmp_path / "global.json", {"sdk": {"version": "8.0.100", "rollForward": "latestFeature"}})
        resolver = ConfigurationResolver(ComponentKinds.SDK, path, {Constants.ENV_ALLOW_PRERELEASE: "0"},
                                         cli_layer("8.0.300"))
        assert [layer.name for layer in resolver.layers()] == [LAYER_FILE, LAYER_ENVIRONMENT, LAYER_COMMAND_LINE]
        request = resolver.resolve()
        assert str(request.requested_version) == "8.0.300"
        assert request.roll_forward is RollForwardMode.LATEST_FEATURE
        assert request.allow_prerelease is False

    def test_find_config_file_walks_up(self, tmp_path):
        """The nearest global.json above the start directory is found."""
        _write(tmp_path / "global.json", {"sdk": {"version": "8.0.100"}})
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(str(nested)) == str(tmp_path / "global.json")
        assert find_config_file(str(nested), ["nothing-named-this.json"]) is None
