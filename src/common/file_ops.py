"""Shared filesystem helpers used by the catalog, pin store and collector.

Encapsulates bounded retries, advisory lock files, atomic replace and
caller deadlines so the versioning modules avoid duplicating them. Every
wait here is bounded; nothing blocks indefinitely.
"""
from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from typing import Callable, Optional, TypeVar

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from versioning.errors import LockContention, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """Caller-supplied deadline and/or cancellation signal for surrounding I/O."""

    def __init__(self, seconds: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None):
        self._expires_at = None if seconds is None else time.monotonic() + float(seconds)
        self._cancel_event = cancel_event

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, what: str) -> None:
        """Raise OperationCancelled if the caller gave up."""
        if self.cancelled():
            raise OperationCancelled(f"{what}: cancelled")
        if self.expired():
            raise OperationCancelled(f"{what}: deadline exceeded")

    def cap(self, seconds: float) -> float:
        """Clamp a wait so it never outlives the deadline."""
        remaining = self.remaining()
        return seconds if remaining is None else min(seconds, remaining)


NO_DEADLINE = Deadline()


def retry_io(fn: Callable[[], T], *, what: str, deadline: Deadline = NO_DEADLINE,
             retry_on=(OSError,), give_up_on=(FileNotFoundError, NotADirectoryError, PermissionError)) -> T:
    """Run fn with bounded retries and exponential backoff on transient OS errors."""
    delay = float(Constants.RETRY_BASE_DELAY_SEC)
    attempts = max(1, int(Constants.RETRY_MAX))
    attempt = 0
    while True:
        deadline.check(what)
        try:
            return fn()
        except give_up_on:
            raise
        except retry_on as exc:
            if is_debug_enabled(logger):
                logger.debug(
                    "Transient I/O error",
                    extra=extra_context(event="io_retry", component="file_ops", action=what,
                                        attempt=attempt + 1, error=str(exc)),
                )
            attempt += 1
            if attempt >= attempts:
                raise
            time.sleep(deadline.cap(delay))
            delay *= 2


def atomic_write_text(path: str, text: str, deadline: Deadline = NO_DEADLINE) -> None:
    """Write text to path so readers see either the old or the new content.

    Writes a temp file in the same directory, fsyncs it and renames it over
    the target. On cancellation the temp file is removed and the target is
    untouched.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    tmp_path = os.path.join(directory, f".{os.path.basename(path)}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        deadline.check(f"write {path}")
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class FileLock:
    """Advisory lock file created with O_EXCL.

    Acquisition retries with backoff up to ``timeout`` seconds and then
    raises LockContention. A lock file older than ``stale_after`` seconds
    is assumed abandoned by a crashed process and is broken.
    """

    def __init__(self, path: str, timeout: Optional[float] = None,
                 deadline: Deadline = NO_DEADLINE, stale_after: Optional[float] = None):
        self.path = path
        self.timeout = float(Constants.LOCK_TIMEOUT_SEC if timeout is None else timeout)
        self.stale_after = float(Constants.STALE_LOCK_SEC if stale_after is None else stale_after)
        self.deadline = deadline
        self._held = False

    def _is_stale(self) -> bool:
        try:
            age = time.time() - os.path.getmtime(self.path)
        except FileNotFoundError:
            return False
        return age > self.stale_after

    def acquire(self) -> "FileLock":
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        start = time.monotonic()
        delay = float(Constants.RETRY_BASE_DELAY_SEC)
        while True:
            self.deadline.check(f"lock {self.path}")
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._is_stale():
                    logger.warning("Breaking stale lock %s", self.path)
                    try:
                        os.unlink(self.path)
                    except FileNotFoundError:
                        pass
                    continue
                waited = time.monotonic() - start
                if waited >= self.timeout:
                    raise LockContention(
                        f"Timed out after {self.timeout:g}s waiting for lock {self.path}"
                    ) from None
                time.sleep(self.deadline.cap(min(delay, self.timeout - waited)))
                delay = min(delay * 2, 1.0)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(f"{os.getpid()}\n")
            self._held = True
            return self

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            logger.debug("Lock %s already removed", self.path)

    def __enter__(self) -> "FileLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
