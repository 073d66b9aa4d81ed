"""`dotbind gc`."""

from __future__ import annotations

import json
import logging

from constants import ComponentKinds, ExitCodes
from common.file_ops import Deadline
from versioning.catalog import VersionCatalog
from versioning.gc import DEFAULT_GC_KINDS, GarbageCollector, GcReport
from versioning.pinstore import PinStore

logger = logging.getLogger(__name__)


def report_to_dict(report: GcReport) -> dict:
    def _entry(item, reason=None):
        data = {"kind": item.kind.value, "component": item.component_id,
                "version": str(item.version), "band": str(item.band), "path": item.path}
        if reason is not None:
            data["reason"] = reason
        return data

    return {
        "dryRun": report.dry_run,
        "removed": [_entry(i) for i in report.removed],
        "skipped": [_entry(i, r) for i, r in report.skipped],
        "kept": [_entry(i, r) for i, r in report.kept],
    }


def run_gc(args, deadline: Deadline) -> int:
    """Collect unreferenced installs and report what happened."""
    kinds = [ComponentKinds(k) for k in args.KINDS] or list(DEFAULT_GC_KINDS)
    catalog = VersionCatalog(args.ROOT, deadline=deadline)
    pins = PinStore(args.STATE_DIR, deadline=deadline, lock_timeout=args.LOCK_TIMEOUT)
    collector = GarbageCollector(catalog, pins, kinds=kinds, deadline=deadline,
                                 lock_timeout=args.LOCK_TIMEOUT)
    report = collector.collect(dry_run=args.DRY_RUN)

    if args.JSON:
        print(json.dumps(report_to_dict(report), indent=2))
    else:
        verb = "would remove" if report.dry_run else "removed"
        for item in report.removed:
            print(f"{verb} {item.kind.value} {item.component_id} {item.version} [{item.band}]")
        for item, reason in report.skipped:
            print(f"skipped {item.kind.value} {item.component_id} {item.version} [{item.band}]: {reason}")

    if report.skipped:
        logger.warning("%d version(s) could not be collected.", len(report.skipped))
        if args.ERROR_ON_WARNINGS:
            logger.error("Warnings present, exiting with non-zero status code.")
            return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value
