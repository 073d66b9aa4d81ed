"""Workload set resolver for one SDK feature band.

When a workload set is installed for the band it is resolved as one
unit; its manifest mapping is the result. Without any workload set, each
manifest resolves on its own to the highest version owned by the band
or by the nearest earlier band of the same major.minor.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Optional

from constants import ComponentKinds

from ..catalog import VersionCatalog
from ..models import (FeatureBand, InstalledVersionSet, ManifestRef, PinRecord, ResolutionRequest,
                      ResolutionResult, RollForwardMode)
from ..ordering import VersionOrdering, band_floor
from ..parser import parse_feature_band
from .base import VersionResolver

logger = logging.getLogger(__name__)


def _override(manifests: Dict[str, ManifestRef], overrides: Dict[str, ManifestRef]) -> Dict[str, ManifestRef]:
    """Apply per-manifest pins on top of a workload set, matching ids case-insensitively."""
    merged = dict(manifests)
    for manifest_id, ref in overrides.items():
        for existing in [k for k in merged if k.lower() == manifest_id.lower()]:
            del merged[existing]
        merged[manifest_id] = ref
    return merged


class WorkloadSetVersionResolver(VersionResolver):
    """Resolver for the workload set (or loose manifests) of one feature band."""

    def __init__(self, catalog: VersionCatalog, band, ordering: Optional[VersionOrdering] = None):
        self.band: FeatureBand = parse_feature_band(band)
        super().__init__(catalog, ordering)

    @property
    def kind(self) -> ComponentKinds:
        """Return the workload set kind."""
        return ComponentKinds.WORKLOAD_SET

    def _band_request(self, req: ResolutionRequest) -> ResolutionRequest:
        """Without an explicit version, take the latest set of this band."""
        if req.explicit_version:
            return req
        return replace(req, requested_version=band_floor(self.band),
                       roll_forward=RollForwardMode.LATEST_PATCH)

    def pick(self, req: ResolutionRequest, candidates: InstalledVersionSet) -> ResolutionResult:
        band_sets = candidates.for_band(self.band)
        if not req.explicit_version and not band_sets:
            return self.resolve_manifests(req)

        pool = candidates if req.explicit_version else band_sets
        result = super().pick(self._band_request(req), pool)
        workload_set = self.catalog.load_workload_set(result.resolved)
        result.manifests = dict(workload_set.manifests)
        result.source = "workload-set"
        return result

    def pick_pinned(self, req: ResolutionRequest, candidates: InstalledVersionSet,
                    pin: PinRecord) -> ResolutionResult:
        result = super().pick_pinned(req, candidates, pin)
        workload_set = self.catalog.load_workload_set(result.resolved)
        result.manifests = _override(workload_set.manifests, pin.manifests)
        return result

    def resolve_manifests(self, req: ResolutionRequest) -> ResolutionResult:
        """Per-manifest resolution used when no workload set is installed for the band."""
        manifests = self.catalog.list(ComponentKinds.WORKLOAD_MANIFEST)
        ordering = self.engine.ordering
        resolved: Dict[str, ManifestRef] = {}
        for manifest_id in manifests.components():
            usable = [
                item for item in manifests.for_component(manifest_id)
                if (item.band.major, item.band.minor) == (self.band.major, self.band.minor)
                and item.band.band <= self.band.band
                and (req.allow_prerelease or not item.version.is_prerelease)
            ]
            if not usable:
                continue
            nearest_band = max(item.band for item in usable)
            best = ordering.highest([i for i in usable if i.band == nearest_band], attr="version")
            resolved[best.component_id] = ManifestRef(best.version, best.band)
        logger.debug("Resolved %d manifests for band %s without a workload set", len(resolved), self.band)
        return ResolutionResult(
            kind=ComponentKinds.WORKLOAD_MANIFEST,
            component_id=str(self.band),
            requested=None,
            roll_forward=RollForwardMode.LATEST_PATCH,
            resolved=None,
            candidate_count=len(manifests),
            source="manifests",
            manifests=resolved,
        )
