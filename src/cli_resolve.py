"""`dotbind resolve` and `dotbind list`."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict

from constants import ComponentKinds, ExitCodes
from common.file_ops import Deadline
from common.logging_utils import extra_context, is_debug_enabled
from versioning.catalog import VersionCatalog
from versioning.config_resolver import ConfigurationResolver, cli_layer, find_config_file
from versioning.models import InstalledVersion, ResolutionResult
from versioning.pinstore import PinStore
from versioning.service import VersionResolutionService

logger = logging.getLogger(__name__)


def installed_to_dict(item: InstalledVersion) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "kind": item.kind.value,
        "component": item.component_id,
        "version": str(item.version),
        "path": item.path,
    }
    if item.owning_band is not None:
        data["band"] = str(item.owning_band)
    if item.baseline:
        data["baseline"] = True
    return data


def result_to_dict(result: ResolutionResult) -> Dict[str, Any]:
    """JSON-friendly view of a resolution result."""
    return {
        "kind": result.kind.value,
        "component": result.component_id,
        "requested": None if result.requested is None else str(result.requested),
        "rollForward": result.roll_forward.value,
        "resolved": None if result.resolved is None else str(result.resolved.version),
        "path": None if result.resolved is None else result.resolved.path,
        "source": result.source,
        "candidates": result.candidate_count,
        "manifests": {k: str(v) for k, v in sorted(result.manifests.items())},
    }


def run_resolve(args, deadline: Deadline) -> int:
    """Merge configuration layers, honor pins and print the selected version."""
    kind = ComponentKinds(args.KIND)
    config_path = args.CONFIG or find_config_file(os.getcwd())
    if config_path:
        logger.debug("Using configuration file %s", config_path)
    cli = cli_layer(args.VERSION, args.ROLL_FORWARD, args.ALLOW_PRERELEASE, args.ROLL_FORWARD_LEGACY)
    request = ConfigurationResolver(kind, config_path, os.environ, cli).resolve()

    catalog = VersionCatalog(args.ROOT, deadline=deadline)
    pins = PinStore(args.STATE_DIR, deadline=deadline, lock_timeout=args.LOCK_TIMEOUT)
    service = VersionResolutionService(catalog, pins)
    result = service.resolve(request, component_id=args.FRAMEWORK, scope=args.SCOPE, band=args.BAND)

    if is_debug_enabled(logger):
        logger.debug(
            "Resolution finished",
            extra=extra_context(event="resolve", component="cli", action=kind.value,
                                version=str(result.resolved_version), outcome=result.source),
        )
    if args.JSON:
        print(json.dumps(result_to_dict(result), indent=2))
        return ExitCodes.SUCCESS.value

    if result.resolved is not None:
        print(f"{result.resolved.version} {result.resolved.path}")
    for manifest_id, ref in sorted(result.manifests.items()):
        print(f"  {manifest_id} {ref}")
    return ExitCodes.SUCCESS.value


def run_list(args, deadline: Deadline) -> int:
    """Print installed versions of one kind, lowest first."""
    catalog = VersionCatalog(args.ROOT, deadline=deadline)
    installed = catalog.list(ComponentKinds(args.KIND), args.COMPONENT)
    if args.JSON:
        print(json.dumps([installed_to_dict(i) for i in installed], indent=2))
        return ExitCodes.SUCCESS.value
    if not installed:
        logger.warning("No %s installs found under %s", args.KIND, catalog.root)
    for item in installed:
        band = f" [{item.owning_band}]" if item.owning_band is not None else ""
        print(f"{item.component_id} {item.version}{band} {item.path}")
    return ExitCodes.SUCCESS.value
