"""Roll-forward selection over an installed version set.

One evaluation per request, no persisted state, no I/O. Candidate
narrowing runs first (prerelease, floor, band), then the selection rules
for the active mode; the first rule that produces a version wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from common.logging_utils import extra_context, is_debug_enabled

from .errors import NoCandidateError
from .models import InstalledVersion, ResolutionRequest, RollForwardMode, Version
from .ordering import DEFAULT_ORDERING, VersionOrdering

logger = logging.getLogger(__name__)

# Least to most permissive; used to suggest an alternative after a failure.
_HINT_MODES = (
    RollForwardMode.PATCH,
    RollForwardMode.FEATURE,
    RollForwardMode.MINOR,
    RollForwardMode.MAJOR,
)


@dataclass(frozen=True)
class ResolutionContext:
    """Ambient choices threaded explicitly into the engine."""
    ordering: VersionOrdering = DEFAULT_ORDERING

    @classmethod
    def for_ordering(cls, ordering: Optional[VersionOrdering] = None) -> "ResolutionContext":
        return cls(ordering=ordering or DEFAULT_ORDERING)


@dataclass(frozen=True)
class Selection:
    """The engine's choice and why it was made."""
    installed: InstalledVersion
    mode: RollForwardMode
    candidate_count: int
    reason: str  # "exact" | "requested-band" | "rolled-forward" | "latest"

    @property
    def version(self) -> Version:
        return self.installed.version


def _band_key(v: Version) -> Tuple[int, int, int]:
    return (v.major, v.minor, v.band)


class RollForwardEngine:
    """Selects exactly one installed version for a request, or raises NoCandidateError."""

    def __init__(self, context: Optional[ResolutionContext] = None):
        self.context = context or ResolutionContext()

    @property
    def ordering(self) -> VersionOrdering:
        return self.context.ordering

    # -- narrowing -----------------------------------------------------------------

    def candidates(self, request: ResolutionRequest, installed: Iterable[InstalledVersion]) -> List[InstalledVersion]:
        """Apply the prerelease, floor and band filters, in that order."""
        requested = request.requested_version
        mode = request.roll_forward
        floor_key = self.ordering.key(requested)

        items = list(installed)
        if not request.allow_prerelease:
            items = [i for i in items if not i.version.is_prerelease]
        items = [i for i in items if self.ordering.key(i.version) >= floor_key]

        tier = mode.tier
        if tier == 1:
            items = [i for i in items if _band_key(i.version) == _band_key(requested)]
        elif tier == 2:
            items = [i for i in items if (i.version.major, i.version.minor) == (requested.major, requested.minor)]
        elif tier == 3:
            items = [i for i in items if i.version.major == requested.major]
        return self.ordering.sort(items, attr="version")

    # -- selection rules -----------------------------------------------------------

    def _exact(self, requested: Version, items: List[InstalledVersion]) -> Optional[InstalledVersion]:
        for item in items:
            if item.version == requested:
                return item
        return None

    def _highest(self, items: List[InstalledVersion]) -> InstalledVersion:
        return self.ordering.highest(items, attr="version")

    def _nearest(self, requested: Version, items: List[InstalledVersion]) -> Tuple[InstalledVersion, str]:
        """Prefer the requested band's highest patch, else step up to the nearest higher band.

        An installed exact match is only chosen when no higher patch of its
        band is installed.
        """
        same_band = [i for i in items if _band_key(i.version) == _band_key(requested)]
        if same_band:
            chosen = self._highest(same_band)
            return chosen, "exact" if chosen.version == requested else "requested-band"

        pool = [i for i in items if (i.version.major, i.version.minor) == (requested.major, requested.minor)]
        if not pool:
            pool = [i for i in items if i.version.major == requested.major]
        if not pool:
            pool = items
        lowest_band = min(_band_key(i.version) for i in pool)
        chosen = [i for i in pool if _band_key(i.version) == lowest_band]
        return self._highest(chosen), "rolled-forward"

    def try_select(self, request: ResolutionRequest,
                   installed: Iterable[InstalledVersion]) -> Tuple[Optional[Selection], int]:
        """Return (selection or None, number of installed versions considered)."""
        pool = list(installed)
        mode = request.roll_forward
        requested = request.requested_version
        items = self.candidates(request, pool)
        count = len(pool)
        if not items:
            return None, count

        if mode == RollForwardMode.DISABLE:
            exact = self._exact(requested, items)
            return (Selection(exact, mode, count, "exact") if exact else None), count

        if mode.is_latest:
            return Selection(self._highest(items), mode, count, "latest"), count

        chosen, reason = self._nearest(requested, items)
        return Selection(chosen, mode, count, reason), count

    def select(self, request: ResolutionRequest, installed: Iterable[InstalledVersion]) -> Selection:
        """Select one version or raise NoCandidateError (with a hint when one exists)."""
        pool = list(installed)
        selection, count = self.try_select(request, pool)
        if selection is None:
            hint = self.suggest(request, pool)
            detail = f"{count} installed" if count else "nothing installed"
            raise NoCandidateError(request.requested_version, request.roll_forward,
                                   kind=request.kind.value, hint=hint, detail=detail)
        if is_debug_enabled(logger):
            logger.debug(
                "Version selected",
                extra=extra_context(event="rollforward_select", component="engine",
                                    action=request.roll_forward.value, version=str(selection.version),
                                    outcome=selection.reason, count=count),
            )
        return selection

    def suggest(self, request: ResolutionRequest, installed: Iterable[InstalledVersion]) -> Optional[str]:
        """Name the nearest alternative above the floor under a more permissive mode."""
        pool = list(installed)
        current_tier = request.roll_forward.tier
        for mode in _HINT_MODES:
            if mode.tier <= current_tier:
                continue
            selection, _ = self.try_select(replace(request, roll_forward=mode), pool)
            if selection is not None:
                return (f"nearest available alternative is {selection.version}; "
                        f"try `--roll-forward {mode.value}`")
        if not request.allow_prerelease:
            relaxed = replace(request, allow_prerelease=True, roll_forward=RollForwardMode.LATEST_MAJOR)
            selection, _ = self.try_select(relaxed, pool)
            if selection is not None:
                return (f"prerelease {selection.version} is installed; "
                        "try `--allow-prerelease` with a more permissive `--roll-forward`")
        return None
