"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    These are stable so CI systems can branch on them.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    USAGE_ERROR = 2
    EXIT_WARNINGS = 3
    NO_CANDIDATE = 4
    CONFIGURATION_CONFLICT = 5
    CATALOG_READ_ERROR = 6
    CATALOG_INTEGRITY_ERROR = 7
    LOCK_CONTENTION = 8
    CANCELLED = 9
    PIN_STORE_ERROR = 10


class ComponentKinds(Enum):
    """Component kinds the catalog knows how to enumerate.

    Args:
        Enum (string): Component kinds supported by the program.
    """

    RUNTIME = "runtime"
    SDK = "sdk"
    WORKLOAD_MANIFEST = "workload-manifest"
    WORKLOAD_SET = "workload-set"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    SUPPORTED_KINDS = [
        ComponentKinds.SDK.value,
        ComponentKinds.RUNTIME.value,
        ComponentKinds.WORKLOAD_MANIFEST.value,
        ComponentKinds.WORKLOAD_SET.value,
    ]
    RESOLVABLE_KINDS = [
        ComponentKinds.SDK.value,
        ComponentKinds.RUNTIME.value,
        ComponentKinds.WORKLOAD_SET.value,
    ]
    COLLECTABLE_KINDS = [
        ComponentKinds.SDK.value,
        ComponentKinds.WORKLOAD_SET.value,
        ComponentKinds.WORKLOAD_MANIFEST.value,
    ]
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

    # Install layout
    DEFAULT_ROOT = os.path.join(os.path.expanduser("~"), ".dotnet")
    SDK_DIR = "sdk"
    SHARED_DIR = "shared"
    MANIFESTS_DIR = "sdk-manifests"
    WORKLOAD_SETS_DIR = "workloadsets"
    METADATA_DIR = "metadata"
    REFERENCES_DIR = "references"
    PINS_DIR = "pins"
    LOCKS_DIR = "locks"
    DEFAULT_SDK_COMPONENT = "Microsoft.NET.Sdk"
    DEFAULT_FRAMEWORK = "Microsoft.NETCore.App"
    WORKLOAD_SET_COMPONENT = "workloadset"

    # Completeness and baseline markers
    VERSION_MARKER = ".version"
    MANIFEST_MARKER = "WorkloadManifest.json"
    WORKLOAD_SET_SUFFIX = ".workloadset.json"
    BASELINE_MARKER = "baseline.workloadset.json"
    PIN_FILE = "pin"
    TRASH_PREFIX = ".deleting-"

    # Environment variables
    ENV_ROOT = "DOTBIND_ROOT"
    ENV_STATE_DIR = "DOTBIND_STATE_DIR"
    ENV_CONFIG = "DOTBIND_CONFIG"
    ENV_LOG_LEVEL = "DOTBIND_LOG_LEVEL"
    ENV_VERSION = "DOTBIND_VERSION"
    ENV_ROLL_FORWARD = "DOTBIND_ROLL_FORWARD"
    ENV_ROLL_FORWARD_LEGACY = "DOTBIND_ROLL_FORWARD_ON_NO_CANDIDATE_FX"
    ENV_ALLOW_PRERELEASE = "DOTBIND_ALLOW_PRERELEASE"

    # Resolution defaults
    DEFAULT_ROLL_FORWARD = {
        ComponentKinds.SDK.value: "latestPatch",
        ComponentKinds.RUNTIME.value: "minor",
        ComponentKinds.WORKLOAD_SET.value: "latestPatch",
        ComponentKinds.WORKLOAD_MANIFEST.value: "latestPatch",
    }
    NO_VERSION_ROLL_FORWARD = "latestMajor"
    DEFAULT_ALLOW_PRERELEASE = True
    PRERELEASE_LABELS = ["alpha", "beta", "preview", "rc"]
    CONFIG_FILE_NAMES = ["global.json", "dotbind.yml", "dotbind.yaml"]

    # Bounded waits
    LOCK_TIMEOUT_SEC = 10.0
    STALE_LOCK_SEC = 300.0
    RETRY_MAX = 3
    RETRY_BASE_DELAY_SEC = 0.05


def _default_config_path() -> str:
    """Return the per-user tool configuration path."""
    return os.path.join(os.path.expanduser("~"), ".config", "dotbind", "dotbind.yml")


_TUNABLES = {
    "default_root": "DEFAULT_ROOT",
    "default_allow_prerelease": "DEFAULT_ALLOW_PRERELEASE",
    "prerelease_labels": "PRERELEASE_LABELS",
    "lock_timeout_sec": "LOCK_TIMEOUT_SEC",
    "stale_lock_sec": "STALE_LOCK_SEC",
    "retry_max": "RETRY_MAX",
    "retry_base_delay_sec": "RETRY_BASE_DELAY_SEC",
    "log_format": "LOG_FORMAT",
}


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load tool tunables from YAML and apply them onto Constants.

    Unknown keys are ignored. A missing file is not an error.

    Args:
        path (str, optional): Explicit config path. Defaults to DOTBIND_CONFIG
            or the per-user config file.

    Returns:
        dict: The keys that were applied.
    """
    cfg_path = path or os.environ.get(Constants.ENV_CONFIG) or _default_config_path()
    if not os.path.isfile(cfg_path):
        return {}

    import yaml  # pylint: disable=import-outside-toplevel

    with open(cfg_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring tool config %s: expected a mapping", cfg_path)
        return {}

    applied: Dict[str, Any] = {}
    for key, value in data.items():
        attr = _TUNABLES.get(str(key).strip().lower())
        if attr is None:
            continue
        setattr(Constants, attr, value)
        applied[attr] = value
    return applied
