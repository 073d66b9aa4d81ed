"""Layered configuration merge producing one effective ResolutionRequest.

Layers are an explicit ordered list, lowest precedence first:

- file: a checked-in document (``global.json`` style, YAML or JSON)
- environment: DOTBIND_* variables
- command-line: explicit flags

Precedence rules implemented by merge_layers():

1. A layer setting both a version and a policy replaces the pair.
2. A layer setting only a policy keeps the lower layer's version.
3. A layer setting only a version keeps an explicitly set lower policy.
4. allowPrerelease is taken from the highest layer that sets it.

Conflicts are raised before any catalog I/O happens.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from constants import ComponentKinds, Constants
from common.logging_utils import extra_context, is_debug_enabled

from .errors import ConfigurationConflictError, ParseError
from .models import ResolutionRequest, RollForwardMode, Version
from .parser import parse_bool, parse_legacy_roll_forward, parse_roll_forward, parse_version, scheme_for

logger = logging.getLogger(__name__)

LAYER_FILE = "file"
LAYER_ENVIRONMENT = "environment"
LAYER_COMMAND_LINE = "command-line"

_SECTIONS = {
    ComponentKinds.SDK: "sdk",
    ComponentKinds.RUNTIME: "runtimeOptions",
    ComponentKinds.WORKLOAD_SET: "workloadSet",
    ComponentKinds.WORKLOAD_MANIFEST: "workloadSet",
}


@dataclass
class ConfigLayer:
    """Settings contributed by one source; None means "not set here"."""
    name: str
    version: Optional[str] = None
    roll_forward: Optional[RollForwardMode] = None
    allow_prerelease: Optional[bool] = None
    source: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.version is None and self.roll_forward is None and self.allow_prerelease is None


def _legacy_and_current(layer_name: str, current, legacy_value, apply_patches, source: Optional[str]):
    """Combine the current and legacy spellings of the roll-forward setting of one layer."""
    has_legacy = legacy_value is not None or apply_patches is not None
    if current is not None and has_legacy:
        where = f" in {source}" if source else ""
        raise ConfigurationConflictError(
            f"The {layer_name} layer{where} sets both rollForward and the legacy "
            "rollForwardOnNoCandidateFx/applyPatches settings; use rollForward only"
        )
    if current is not None:
        return parse_roll_forward(current)
    if has_legacy:
        apply = True if apply_patches is None else parse_bool(apply_patches, "applyPatches")
        return parse_legacy_roll_forward(1 if legacy_value is None else legacy_value, apply)
    return None


def _get_ci(mapping: Mapping[str, Any], key: str):
    wanted = key.lower()
    for k, v in mapping.items():
        if str(k).lower() == wanted:
            return v
    return None


def _text_or_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def read_file_layer(path: Optional[str], kind: ComponentKinds = ComponentKinds.SDK) -> ConfigLayer:
    """Read the persisted configuration layer.

    Settings live in the kind's section (``sdk``, ``runtimeOptions``,
    ``workloadSet``) or at top level. Unknown fields are ignored.
    """
    if not path or not os.path.isfile(path):
        return ConfigLayer(LAYER_FILE, source=path)

    import yaml  # pylint: disable=import-outside-toplevel

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ParseError(f"Cannot parse configuration file {path}: {exc}") from exc
    if data is None:
        return ConfigLayer(LAYER_FILE, source=path)
    if not isinstance(data, dict):
        raise ParseError(f"Configuration file {path} must contain a mapping")

    section = _get_ci(data, _SECTIONS[kind])
    settings = section if isinstance(section, dict) else data

    raw_version = _get_ci(settings, "version")
    if raw_version is not None and not isinstance(raw_version, str):
        raise ParseError(f"Configuration file {path}: version must be a quoted string, got {raw_version!r}")
    allow = _get_ci(settings, "allowPrerelease")
    return ConfigLayer(
        LAYER_FILE,
        version=_text_or_none(raw_version),
        roll_forward=_legacy_and_current(
            LAYER_FILE,
            _text_or_none(_get_ci(settings, "rollForward")),
            _get_ci(settings, "rollForwardOnNoCandidateFx"),
            _get_ci(settings, "applyPatches"),
            path,
        ),
        allow_prerelease=None if allow is None else parse_bool(allow, "allowPrerelease"),
        source=path,
    )


def read_env_layer(environ: Optional[Mapping[str, str]] = None) -> ConfigLayer:
    """Read the environment layer; empty variables count as unset."""
    env = os.environ if environ is None else environ
    allow = _text_or_none(env.get(Constants.ENV_ALLOW_PRERELEASE))
    return ConfigLayer(
        LAYER_ENVIRONMENT,
        version=_text_or_none(env.get(Constants.ENV_VERSION)),
        roll_forward=_legacy_and_current(
            LAYER_ENVIRONMENT,
            _text_or_none(env.get(Constants.ENV_ROLL_FORWARD)),
            _text_or_none(env.get(Constants.ENV_ROLL_FORWARD_LEGACY)),
            None,
            None,
        ),
        allow_prerelease=None if allow is None else parse_bool(allow, Constants.ENV_ALLOW_PRERELEASE),
        source="environment",
    )


def cli_layer(version: Optional[str] = None, roll_forward: Optional[str] = None,
              allow_prerelease: Optional[bool] = None,
              legacy_roll_forward: Optional[str] = None) -> ConfigLayer:
    """Build the command-line layer from parsed flags."""
    return ConfigLayer(
        LAYER_COMMAND_LINE,
        version=_text_or_none(version),
        roll_forward=_legacy_and_current(LAYER_COMMAND_LINE, _text_or_none(roll_forward),
                                         _text_or_none(legacy_roll_forward), None, None),
        allow_prerelease=allow_prerelease,
        source="command line",
    )


def merge_layers(layers: Sequence[ConfigLayer], kind: ComponentKinds = ComponentKinds.SDK) -> ResolutionRequest:
    """Merge ordered layers (lowest precedence first) into one request.

    Raises:
        ConfigurationConflictError: a policy other than the no-version
            default is set but no layer supplies a version.
        ParseError: a layer's version cannot be parsed.
    """
    version_text: Optional[str] = None
    mode: Optional[RollForwardMode] = None
    allow: Optional[bool] = None
    sources: Dict[str, str] = {}

    for layer in layers:
        if layer.version is not None:
            version_text = layer.version
            sources["version"] = layer.name
            if layer.roll_forward is not None:
                mode = layer.roll_forward
                sources["rollForward"] = layer.name
        elif layer.roll_forward is not None:
            mode = layer.roll_forward
            sources["rollForward"] = layer.name
        if layer.allow_prerelease is not None:
            allow = layer.allow_prerelease
            sources["allowPrerelease"] = layer.name

    scheme = scheme_for(kind)
    no_version_mode = parse_roll_forward(Constants.NO_VERSION_ROLL_FORWARD)
    if version_text is None:
        if mode is not None and mode != no_version_mode:
            raise ConfigurationConflictError(
                f"rollForward '{mode.value}' (from {sources['rollForward']}) requires a version; "
                f"only '{no_version_mode.value}' is valid without one"
            )
        requested = Version(0, 0, 0, 0, scheme=scheme)
        mode = no_version_mode
        explicit = False
    else:
        requested = parse_version(version_text, scheme)
        if mode is None:
            mode = parse_roll_forward(Constants.DEFAULT_ROLL_FORWARD[kind.value])
            sources["rollForward"] = "default"
        explicit = True

    if allow is None:
        allow = bool(Constants.DEFAULT_ALLOW_PRERELEASE)
        sources["allowPrerelease"] = "default"
    if requested.is_prerelease:
        allow = True

    request = ResolutionRequest(requested, mode, allow, kind, explicit, sources)
    if is_debug_enabled(logger):
        logger.debug(
            "Effective resolution request",
            extra=extra_context(event="config_merged", component="config_resolver", action=kind.value,
                                version=str(requested), mode=mode.value, allow_prerelease=allow,
                                sources=dict(sources)),
        )
    return request


def find_config_file(start_dir: str, names: Optional[Sequence[str]] = None) -> Optional[str]:
    """Walk up from start_dir to the filesystem root looking for a config file."""
    candidates = list(names or Constants.CONFIG_FILE_NAMES)
    current = os.path.abspath(start_dir)
    while True:
        for name in candidates:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


class ConfigurationResolver:
    """Collects the file, environment and command-line layers for one invocation."""

    def __init__(self, kind: ComponentKinds = ComponentKinds.SDK, config_path: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None, cli: Optional[ConfigLayer] = None):
        self.kind = kind
        self.config_path = config_path
        self.environ = environ
        self.cli = cli or ConfigLayer(LAYER_COMMAND_LINE)

    def layers(self) -> List[ConfigLayer]:
        return [
            read_file_layer(self.config_path, self.kind),
            read_env_layer(self.environ),
            self.cli,
        ]

    def resolve(self) -> ResolutionRequest:
        return merge_layers(self.layers(), self.kind)
