"""Garbage collection of installed workload sets, manifests and SDKs.

Roots, computed per feature band:

- referenced by a pin in any scope
- the version the default (no-pin) policy selects for its band and component
- carrying the baseline marker
- manifests only: referenced by a root workload set of the same band, or
  by an explicit cross-band reference marker

Everything else is collectible. Deletion re-checks root status under a
per-version lock right before removing anything, including the workload
sets that root a manifest. A failure on one version is logged and skipped
rather than aborting the pass.
"""
from __future__ import annotations

import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from constants import ComponentKinds, Constants
from common.file_ops import NO_DEADLINE, Deadline, FileLock
from common.logging_utils import extra_context, is_debug_enabled

from .catalog import VersionCatalog
from .engine import ResolutionContext, RollForwardEngine
from .errors import DotbindError, LockContention, OperationCancelled
from .models import (FeatureBand, InstalledVersion, InstalledVersionSet, PinRecord,
                     ResolutionRequest, RollForwardMode, Version)
from .parser import scheme_for
from .pinstore import PinStore

logger = logging.getLogger(__name__)

DEFAULT_GC_KINDS = (ComponentKinds.SDK, ComponentKinds.WORKLOAD_SET, ComponentKinds.WORKLOAD_MANIFEST)


@dataclass
class GcPlan:
    """Roots (with the reason they are kept) and collectible installs."""
    roots: List[Tuple[InstalledVersion, str]] = field(default_factory=list)
    collectible: List[InstalledVersion] = field(default_factory=list)


@dataclass
class GcReport:
    """Outcome of one collection pass."""
    removed: List[InstalledVersion] = field(default_factory=list)
    skipped: List[Tuple[InstalledVersion, str]] = field(default_factory=list)
    kept: List[Tuple[InstalledVersion, str]] = field(default_factory=list)
    dry_run: bool = False


class _PinIndex:
    """Pinned versions across all scopes, keyed the way installs are compared."""

    def __init__(self, pins: Dict[str, PinRecord]):
        self.versions: Dict[ComponentKinds, Set[Version]] = {}
        self.untyped: Set[Version] = set()
        self.manifests: Set[Tuple[str, Version, FeatureBand]] = set()
        for record in pins.values():
            if record.kind is None:
                self.untyped.add(record.version)
            else:
                self.versions.setdefault(record.kind, set()).add(record.version)
            for manifest_id, ref in record.manifests.items():
                self.manifests.add((manifest_id.lower(), ref.version, ref.band))

    def pins(self, item: InstalledVersion) -> bool:
        if item.version in self.untyped:
            return True
        pinned = self.versions.get(item.kind, set())
        if item.version in pinned:
            return True
        if item.kind == ComponentKinds.WORKLOAD_MANIFEST:
            return (item.component_id.lower(), item.version, item.band) in self.manifests
        return False


class GarbageCollector:
    """Plans and performs collection of unreferenced installs."""

    def __init__(self, catalog: VersionCatalog, pins: PinStore,
                 kinds: Sequence[ComponentKinds] = DEFAULT_GC_KINDS,
                 deadline: Deadline = NO_DEADLINE, lock_timeout: Optional[float] = None):
        self.catalog = catalog
        self.pins = pins
        self.kinds = tuple(kinds)
        self.deadline = deadline
        self.lock_timeout = lock_timeout
        self.engine = RollForwardEngine(ResolutionContext(ordering=catalog.ordering))

    # -- planning --------------------------------------------------------------------

    def _default_selection(self, group: List[InstalledVersion]) -> Optional[InstalledVersion]:
        """What the no-version, no-pin policy would select from one band/component group."""
        kind = group[0].kind
        request = ResolutionRequest(
            Version(0, 0, 0, 0, scheme=scheme_for(kind)),
            RollForwardMode(Constants.NO_VERSION_ROLL_FORWARD),
            bool(Constants.DEFAULT_ALLOW_PRERELEASE),
            kind,
            explicit_version=False,
        )
        selection, _ = self.engine.try_select(request, group)
        return selection.installed if selection else None

    def _groups(self, installed: InstalledVersionSet) -> Dict[Tuple[FeatureBand, str], List[InstalledVersion]]:
        groups: Dict[Tuple[FeatureBand, str], List[InstalledVersion]] = {}
        for item in installed:
            groups.setdefault((item.band, item.component_id.lower()), []).append(item)
        return groups

    def _cross_band_referenced(self, item: InstalledVersion) -> bool:
        if item.kind != ComponentKinds.WORKLOAD_MANIFEST:
            return False
        return bool(self.catalog.referencing_bands(item.band, item.component_id, item.version))

    def _root_reason(self, item: InstalledVersion, index: _PinIndex, defaults: Set[str],
                     set_refs: Set[Tuple[str, Version, FeatureBand]]) -> Optional[str]:
        if index.pins(item):
            return "pinned"
        if item.path in defaults:
            return "latest in band"
        if item.baseline:
            return "baseline"
        if item.kind == ComponentKinds.WORKLOAD_MANIFEST:
            if (item.component_id.lower(), item.version, item.band) in set_refs:
                return "referenced by workload set"
            if self._cross_band_referenced(item):
                return "cross-band reference"
        return None

    def plan(self) -> GcPlan:
        """Compute roots and collectible installs without touching the disk."""
        index = _PinIndex(self.pins.all_pins())
        plan = GcPlan()
        listed = {kind: self.catalog.list(kind) for kind in self.kinds}

        defaults: Set[str] = set()
        for installed in listed.values():
            for group in self._groups(installed).values():
                chosen = self._default_selection(group)
                if chosen is not None:
                    defaults.add(chosen.path)

        # Workload sets first: their root status decides which manifests stay.
        set_refs: Set[Tuple[str, Version, FeatureBand]] = set()
        order = sorted(listed, key=lambda k: k != ComponentKinds.WORKLOAD_SET)
        for kind in order:
            for item in listed[kind]:
                reason = self._root_reason(item, index, defaults, set_refs)
                if reason is None:
                    plan.collectible.append(item)
                    continue
                plan.roots.append((item, reason))
                if kind == ComponentKinds.WORKLOAD_SET:
                    set_refs.update(self._in_band_refs(item))
        return plan

    def _in_band_refs(self, item: InstalledVersion) -> Iterable[Tuple[str, Version, FeatureBand]]:
        """Manifests a root workload set keeps alive in its own band."""
        workload_set = self.catalog.load_workload_set(item)
        for manifest_id, ref in workload_set.manifests.items():
            if ref.band == item.band:
                yield (manifest_id.lower(), ref.version, ref.band)

    # -- deletion --------------------------------------------------------------------

    def _lock_for(self, item: InstalledVersion) -> FileLock:
        name = f"gc-{item.kind.value}-{item.band}-{item.component_id.lower()}-{item.version}.lock"
        path = os.path.join(self.pins.state_root, Constants.LOCKS_DIR, name)
        return FileLock(path, timeout=self.lock_timeout, deadline=self.deadline)

    def _rooted_set_references(self, item: InstalledVersion, index: _PinIndex) -> bool:
        """Whether a workload set of the manifest's band that is a root now names it."""
        if item.kind != ComponentKinds.WORKLOAD_MANIFEST:
            return False
        sets = list(self.catalog.list(ComponentKinds.WORKLOAD_SET).for_band(item.band))
        if not sets:
            return False
        default = self._default_selection(sets)
        key = (item.component_id.lower(), item.version, item.band)
        for workload_set in sets:
            rooted = (index.pins(workload_set) or workload_set is default
                      or os.path.isfile(os.path.join(workload_set.path, Constants.BASELINE_MARKER)))
            if rooted and key in set(self._in_band_refs(workload_set)):
                return True
        return False

    def _became_root(self, item: InstalledVersion) -> Optional[str]:
        """Re-read pins, markers and root workload sets right before deleting."""
        index = _PinIndex(self.pins.all_pins())
        if index.pins(item):
            return "pinned since the scan"
        if os.path.isfile(os.path.join(item.path, Constants.BASELINE_MARKER)):
            return "baseline marker appeared"
        if self._rooted_set_references(item, index):
            return "referenced by a workload set since the scan"
        if self._cross_band_referenced(item):
            return "cross-band reference appeared"
        return None

    def _remove_owned_markers(self, item: InstalledVersion) -> None:
        """Drop the cross-band reference markers a deleted workload set owned."""
        root = self.catalog.references_root()
        if item.kind != ComponentKinds.WORKLOAD_SET or not os.path.isdir(root):
            return
        owner_band, owner = str(item.band), str(item.version)
        for dirpath, _dirnames, filenames in os.walk(root):
            if os.path.basename(dirpath) != owner_band or owner not in filenames:
                continue
            try:
                os.unlink(os.path.join(dirpath, owner))
            except FileNotFoundError:
                continue

    def _delete(self, item: InstalledVersion) -> bool:
        parent, name = os.path.split(item.path)
        trash = os.path.join(parent, f"{Constants.TRASH_PREFIX}{name}-{uuid.uuid4().hex[:8]}")
        try:
            os.rename(item.path, trash)
        except FileNotFoundError:
            logger.info("%s %s was already removed", item.component_id, item.version)
            return False
        shutil.rmtree(trash, ignore_errors=False)
        self._remove_owned_markers(item)
        return True

    def sweep_trash(self) -> int:
        """Finish removals interrupted by a crash or cancellation."""
        swept = 0
        for dirpath, dirnames, _filenames in os.walk(self.catalog.root):
            for name in list(dirnames):
                if not name.startswith(Constants.TRASH_PREFIX):
                    continue
                dirnames.remove(name)
                try:
                    shutil.rmtree(os.path.join(dirpath, name))
                    swept += 1
                except OSError as exc:
                    logger.warning("Could not remove leftover %s: %s", os.path.join(dirpath, name), exc)
        return swept

    def collect(self, dry_run: bool = False) -> GcReport:
        """Delete every collectible install; safe to re-run."""
        plan = self.plan()
        report = GcReport(kept=list(plan.roots), dry_run=dry_run)
        if dry_run:
            report.removed = list(plan.collectible)
            return report

        self.sweep_trash()
        for item in plan.collectible:
            self.deadline.check("garbage collection")
            try:
                with self._lock_for(item):
                    reason = self._became_root(item)
                    if reason is not None:
                        logger.warning("Keeping %s %s (%s): %s", item.kind.value, item.version,
                                       item.band, reason)
                        report.skipped.append((item, reason))
                        continue
                    if not self._delete(item):
                        continue
                    report.removed.append(item)
            except OperationCancelled:
                raise
            except (LockContention, OSError, DotbindError) as exc:
                logger.warning("Skipping %s %s (%s): %s", item.kind.value, item.version, item.band, exc)
                report.skipped.append((item, str(exc)))
                continue
            if is_debug_enabled(logger):
                logger.debug(
                    "Collected install",
                    extra=extra_context(event="gc_remove", component="gc", action=item.kind.value,
                                        version=str(item.version), target=item.path, outcome="removed"),
                )
        logger.info("Garbage collection removed %d, kept %d, skipped %d",
                    len(report.removed), len(report.kept), len(report.skipped))
        return report
