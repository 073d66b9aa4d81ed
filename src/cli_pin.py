"""`dotbind pin {get,set,clear,list}`."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from constants import ComponentKinds, ExitCodes
from common.file_ops import Deadline
from versioning.errors import ParseError
from versioning.models import PinRecord
from versioning.parser import parse_manifest_assignment, parse_version, scheme_for
from versioning.pinstore import PinStore

logger = logging.getLogger(__name__)


def pin_to_dict(scope: str, record: PinRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {"scope": scope, "version": str(record.version)}
    if record.kind is not None:
        data["kind"] = record.kind.value
    if record.manifests:
        data["manifests"] = {k: str(v) for k, v in sorted(record.manifests.items())}
    return data


def _print_pin(args, scope: str, record: PinRecord) -> None:
    if args.JSON:
        print(json.dumps(pin_to_dict(scope, record), indent=2))
        return
    kind = f" ({record.kind.value})" if record.kind is not None else ""
    print(f"{scope}: {record.version}{kind}")
    for manifest_id, ref in sorted(record.manifests.items()):
        print(f"  {manifest_id} {ref}")


def _set(args, pins: PinStore) -> int:
    if args.LATEST:
        if args.VERSION or args.MANIFESTS:
            raise ParseError("--latest cannot be combined with --version or --manifest")
        pins.update(args.SCOPE, None)
        logger.info("Scope %s follows the latest installed version", args.SCOPE)
        return ExitCodes.SUCCESS.value
    if not args.VERSION:
        raise ParseError("pin set requires --version or --latest")

    kind = ComponentKinds(args.KIND) if args.KIND else None
    version = parse_version(args.VERSION, scheme_for(kind or ComponentKinds.SDK))
    manifests = dict(parse_manifest_assignment(token) for token in args.MANIFESTS)
    record = pins.update(args.SCOPE, version, manifests, kind)
    if args.JSON:
        _print_pin(args, args.SCOPE, record)
    return ExitCodes.SUCCESS.value


def run_pin(args, deadline: Deadline) -> int:
    """Dispatch the pin subcommands."""
    pins = PinStore(args.STATE_DIR, deadline=deadline, lock_timeout=args.LOCK_TIMEOUT)
    if args.pin_action == "set":
        return _set(args, pins)

    if args.pin_action == "clear":
        if not pins.clear(args.SCOPE):
            logger.info("Scope %s was not pinned", args.SCOPE)
        return ExitCodes.SUCCESS.value

    if args.pin_action == "list":
        found = pins.all_pins()
        if args.JSON:
            print(json.dumps([pin_to_dict(s, r) for s, r in found.items()], indent=2))
            return ExitCodes.SUCCESS.value
        for scope, record in found.items():
            _print_pin(args, scope, record)
        return ExitCodes.SUCCESS.value

    record = pins.get(args.SCOPE)
    if record is None:
        if args.JSON:
            print(json.dumps(None))
        else:
            logger.info("Scope %s is not pinned", args.SCOPE)
        return ExitCodes.SUCCESS.value
    _print_pin(args, args.SCOPE, record)
    return ExitCodes.SUCCESS.value
