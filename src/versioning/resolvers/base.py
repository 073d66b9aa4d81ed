"""Base class for per-kind version resolvers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from constants import ComponentKinds

from ..catalog import VersionCatalog
from ..engine import ResolutionContext, RollForwardEngine
from ..errors import NoCandidateError
from ..models import InstalledVersionSet, PinRecord, ResolutionRequest, ResolutionResult, RollForwardMode
from ..ordering import VersionOrdering
from ..parser import parse_version, scheme_for


class VersionResolver(ABC):
    """Fetch installed candidates for a kind, then pick one of them."""

    def __init__(self, catalog: VersionCatalog, ordering: Optional[VersionOrdering] = None):
        self.catalog = catalog
        self.engine = RollForwardEngine(ResolutionContext.for_ordering(ordering or catalog.ordering))

    @property
    @abstractmethod
    def kind(self) -> ComponentKinds:
        """Component kind handled by this resolver."""

    @property
    def component_id(self) -> Optional[str]:
        return None

    def fetch_candidates(self, req: ResolutionRequest) -> InstalledVersionSet:
        """Installed versions this resolver may choose from."""
        return self.catalog.list(self.kind, self.component_id)

    def pick(self, req: ResolutionRequest, candidates: InstalledVersionSet) -> ResolutionResult:
        """Apply the roll-forward rules to select a version."""
        selection = self.engine.select(req, candidates)
        return ResolutionResult(
            kind=self.kind,
            component_id=selection.installed.component_id,
            requested=req.requested_version if req.explicit_version else None,
            roll_forward=req.roll_forward,
            resolved=selection.installed,
            candidate_count=selection.candidate_count,
            source="engine",
        )

    def pick_pinned(self, req: ResolutionRequest, candidates: InstalledVersionSet,
                    pin: PinRecord) -> ResolutionResult:
        """Honor a pin without roll-forward; the pinned version must be installed."""
        pinned = parse_version(str(pin.version), scheme_for(self.kind))
        installed = candidates.find(pinned)
        if installed is None:
            raise NoCandidateError(
                pinned, RollForwardMode.DISABLE, kind=self.kind.value,
                detail=f"pinned by scope {pin.source_scope} but not installed",
                hint=f"install {pin.version} or run `dotbind pin clear --scope {pin.source_scope}`",
            )
        return ResolutionResult(
            kind=self.kind,
            component_id=installed.component_id,
            requested=pinned,
            roll_forward=RollForwardMode.DISABLE,
            resolved=installed,
            candidate_count=len(candidates),
            source="pin",
            manifests=dict(pin.manifests),
        )

    def resolve(self, req: ResolutionRequest, pin: Optional[PinRecord] = None) -> ResolutionResult:
        candidates = self.fetch_candidates(req)
        if pin is not None:
            return self.pick_pinned(req, candidates, pin)
        return self.pick(req, candidates)
