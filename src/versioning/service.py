"""Resolution service tying configuration, pins and resolvers together."""

from __future__ import annotations

import logging
from typing import Optional

from constants import ComponentKinds

from .catalog import VersionCatalog
from .errors import ParseError
from .models import ResolutionRequest, ResolutionResult
from .ordering import VersionOrdering
from .pinstore import PinStore
from .resolvers import RuntimeVersionResolver, SdkVersionResolver, VersionResolver, WorkloadSetVersionResolver

logger = logging.getLogger(__name__)


class VersionResolutionService:
    """Resolve one request: a pin for the scope wins, otherwise roll-forward runs."""

    def __init__(self, catalog: VersionCatalog, pins: Optional[PinStore] = None,
                 ordering: Optional[VersionOrdering] = None):
        self.catalog = catalog
        self.pins = pins
        self.ordering = ordering or catalog.ordering

    def resolver_for(self, kind: ComponentKinds, component_id: Optional[str] = None,
                     band: Optional[str] = None) -> VersionResolver:
        if kind == ComponentKinds.SDK:
            return SdkVersionResolver(self.catalog, self.ordering)
        if kind == ComponentKinds.RUNTIME:
            return RuntimeVersionResolver(self.catalog, component_id, self.ordering)
        if kind == ComponentKinds.WORKLOAD_SET:
            if band is None:
                raise ParseError("Resolving a workload set requires a feature band")
            return WorkloadSetVersionResolver(self.catalog, band, self.ordering)
        raise ParseError(f"Component kind '{kind.value}' cannot be resolved directly")

    def resolve(self, request: ResolutionRequest, component_id: Optional[str] = None,
                scope: Optional[str] = None, band: Optional[str] = None) -> ResolutionResult:
        """Resolve request, honoring the pin of scope when one exists.

        For workload sets the scope defaults to the feature band.
        """
        if request.kind == ComponentKinds.WORKLOAD_SET and band is None and request.explicit_version:
            band = str(request.requested_version.feature_band)
        resolver = self.resolver_for(request.kind, component_id, band)
        if request.kind == ComponentKinds.WORKLOAD_SET and scope is None:
            scope = band

        pin = None
        if scope is not None and self.pins is not None:
            pin = self.pins.get(scope)
            if pin is not None and pin.kind not in (None, request.kind):
                logger.debug("Ignoring %s pin for scope %s while resolving %s",
                             pin.kind.value, scope, request.kind.value)
                pin = None

        result = resolver.resolve(request, pin)
        logger.debug("Resolved %s via %s: %s", request.kind.value, result.source,
                     result.resolved_version or f"{len(result.manifests)} manifests")
        return result
