"""Error taxonomy for version resolution, pins and garbage collection."""

from typing import Optional

from constants import ExitCodes


class DotbindError(Exception):
    """Base class for all errors surfaced to the caller."""

    exit_code = ExitCodes.FILE_ERROR


class ParseError(DotbindError, ValueError):
    """A version, band, mode or document could not be parsed."""

    exit_code = ExitCodes.USAGE_ERROR


class CatalogReadError(DotbindError):
    """The install location could not be enumerated."""

    exit_code = ExitCodes.CATALOG_READ_ERROR


class CatalogIntegrityError(DotbindError):
    """Two physically distinct installs claim the same logical version."""

    exit_code = ExitCodes.CATALOG_INTEGRITY_ERROR


class ConfigurationConflictError(DotbindError):
    """Contradictory settings within or across configuration layers."""

    exit_code = ExitCodes.CONFIGURATION_CONFLICT


class NoCandidateError(DotbindError):
    """No installed version satisfies the request.

    Always recoverable by the user: install the version, relax the policy,
    or pin an older one.
    """

    exit_code = ExitCodes.NO_CANDIDATE

    def __init__(self, requested, mode, kind: Optional[str] = None,
                 hint: Optional[str] = None, detail: Optional[str] = None):
        self.requested = requested
        self.mode = mode
        self.kind = kind
        self.hint = hint
        self.detail = detail
        super().__init__(self._format())

    def _format(self) -> str:
        what = f"{self.kind} " if self.kind else ""
        mode = getattr(self.mode, "value", self.mode)
        msg = f"No installed {what}version satisfies {self.requested} with roll-forward '{mode}'"
        if self.detail:
            msg += f" ({self.detail})"
        if self.hint:
            msg += f"; {self.hint}"
        return msg


class LockContention(DotbindError):
    """A lock could not be acquired within the bounded wait."""

    exit_code = ExitCodes.LOCK_CONTENTION


class OperationCancelled(DotbindError):
    """The caller's deadline passed or cancellation was requested."""

    exit_code = ExitCodes.CANCELLED


class PinStoreError(DotbindError):
    """A pin file exists but cannot be understood."""

    exit_code = ExitCodes.PIN_STORE_ERROR
