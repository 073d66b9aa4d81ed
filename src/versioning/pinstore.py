"""Persisted pins: one hand-editable file per scope.

A scope is a feature band (``8.0.100``) or a directory path. Each scope
gets its own directory under ``<state>/pins/`` holding a ``pin`` file and
a ``scope`` file naming the scope it belongs to.

Pin file forms::

    8.0.201

    workloadSet: 8.0.201
    manifests:
      microsoft.net.sdk.android: 34.0.43/8.0.100

    version: 3.1.4
    kind: runtime

Writes are atomic (temp file + rename) under an advisory lock, so a
reader never observes a torn pin.
"""
from __future__ import annotations

import hashlib
import logging
import os
from typing import Dict, List, Optional

import yaml

from constants import ComponentKinds, Constants
from common.file_ops import NO_DEADLINE, Deadline, FileLock, atomic_write_text, retry_io
from common.logging_utils import extra_context, is_debug_enabled

from .errors import ParseError, PinStoreError
from .models import ManifestRef, PinRecord, Version
from .parser import parse_feature_band, parse_manifest_ref, parse_version, scheme_for

logger = logging.getLogger(__name__)

SCOPE_FILE = "scope"


def scope_key(scope: str) -> str:
    """Stable directory name for a scope."""
    text = str(scope).strip()
    if not text:
        raise ParseError("Pin scope must not be empty")
    try:
        return f"band-{parse_feature_band(text)}"
    except ParseError:
        digest = hashlib.sha256(os.path.abspath(text).encode("utf-8")).hexdigest()[:16]
        return f"dir-{digest}"


def format_pin(record: PinRecord) -> str:
    """Serialize a pin, using the single-line form whenever it is enough."""
    if not record.manifests and record.kind is None:
        return f"{record.version}\n"
    data: Dict[str, object] = {}
    if record.kind == ComponentKinds.WORKLOAD_SET:
        data["workloadSet"] = str(record.version)
    else:
        data["version"] = str(record.version)
        if record.kind is not None:
            data["kind"] = record.kind.value
    if record.manifests:
        data["manifests"] = {k: str(v) for k, v in sorted(record.manifests.items())}
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def parse_pin(text: str, scope: str, path: str = "<pin>") -> PinRecord:
    """Parse pin file text; raises PinStoreError when it cannot be understood."""
    body = text.strip()
    if not body:
        raise PinStoreError(f"Pin file {path} is empty")
    try:
        if "\n" not in body and ":" not in body:
            return PinRecord(parse_version(body), scope)
        data = yaml.safe_load(body)
        if not isinstance(data, dict):
            raise PinStoreError(f"Pin file {path} must hold a version or a mapping")

        kind = None
        if "workloadSet" in data:
            kind = ComponentKinds.WORKLOAD_SET
            raw_version = data["workloadSet"]
        elif "version" in data:
            raw_kind = data.get("kind")
            kind = ComponentKinds(raw_kind) if raw_kind is not None else None
            raw_version = data["version"]
        else:
            raise PinStoreError(f"Pin file {path} has neither 'workloadSet' nor 'version'")
        if not isinstance(raw_version, str):
            raise PinStoreError(f"Pin file {path}: version must be a quoted string, got {raw_version!r}")

        manifests: Dict[str, ManifestRef] = {}
        raw_manifests = data.get("manifests") or {}
        if not isinstance(raw_manifests, dict):
            raise PinStoreError(f"Pin file {path}: 'manifests' must be a mapping")
        for manifest_id, ref in raw_manifests.items():
            manifests[str(manifest_id)] = parse_manifest_ref(ref)

        scheme = scheme_for(kind) if kind is not None else scheme_for(ComponentKinds.SDK)
        return PinRecord(parse_version(raw_version, scheme), scope, manifests, kind)
    except (ParseError, yaml.YAMLError, ValueError) as exc:
        raise PinStoreError(f"Cannot parse pin file {path}: {exc}") from exc


class PinStore:
    """Get, set and clear pins per scope."""

    def __init__(self, state_root: str, deadline: Deadline = NO_DEADLINE,
                 lock_timeout: Optional[float] = None):
        self.state_root = os.path.abspath(state_root)
        self.pins_root = os.path.join(self.state_root, Constants.PINS_DIR)
        self.deadline = deadline
        self.lock_timeout = lock_timeout

    def _scope_dir(self, scope: str) -> str:
        return os.path.join(self.pins_root, scope_key(scope))

    def pin_path(self, scope: str) -> str:
        return os.path.join(self._scope_dir(scope), Constants.PIN_FILE)

    def lock(self, scope: str) -> FileLock:
        """Advisory lock guarding one scope's pin."""
        path = os.path.join(self.state_root, Constants.LOCKS_DIR, f"pin-{scope_key(scope)}.lock")
        return FileLock(path, timeout=self.lock_timeout, deadline=self.deadline)

    def get(self, scope: str) -> Optional[PinRecord]:
        """Return the pin for scope, or None when the scope is not pinned."""
        path = self.pin_path(scope)

        def _read() -> str:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()

        try:
            text = retry_io(_read, what=f"read pin {path}", deadline=self.deadline)
        except FileNotFoundError:
            return None
        return parse_pin(text, scope, path)

    def set(self, scope: str, record: PinRecord) -> None:
        """Atomically replace the pin for scope."""
        path = self.pin_path(scope)
        with self.lock(scope):
            atomic_write_text(os.path.join(self._scope_dir(scope), SCOPE_FILE), f"{scope}\n", self.deadline)
            atomic_write_text(path, format_pin(record), self.deadline)
        logger.info("Pinned %s to %s", scope, record.version)
        if is_debug_enabled(logger):
            logger.debug(
                "Pin written",
                extra=extra_context(event="pin_set", component="pinstore", target=path,
                                    version=str(record.version), outcome="success"),
            )

    def clear(self, scope: str) -> bool:
        """Remove the pin for scope; returns False when there was none."""
        path = self.pin_path(scope)
        with self.lock(scope):
            try:
                os.unlink(path)
            except FileNotFoundError:
                return False
        logger.info("Cleared pin for %s", scope)
        return True

    def update(self, scope: str, version: Optional[Version] = None,
               manifests: Optional[Dict[str, ManifestRef]] = None, kind=None) -> Optional[PinRecord]:
        """Pin to an explicit version, or "update to latest" by clearing the pin.

        Clearing (rather than pinning whatever is latest today) keeps "no pin"
        distinguishable from "pinned to the current latest".
        """
        if version is None:
            self.clear(scope)
            return None
        record = PinRecord(version, scope, dict(manifests or {}), kind)
        self.set(scope, record)
        return record

    def scopes(self) -> List[str]:
        """Scopes that currently hold a pin."""
        found = []
        if not os.path.isdir(self.pins_root):
            return found
        for name in sorted(os.listdir(self.pins_root)):
            scope_dir = os.path.join(self.pins_root, name)
            if not os.path.isfile(os.path.join(scope_dir, Constants.PIN_FILE)):
                continue
            try:
                with open(os.path.join(scope_dir, SCOPE_FILE), "r", encoding="utf-8") as fh:
                    found.append(fh.read().strip())
            except FileNotFoundError:
                # Hand-made pin directory: a band directory name is enough.
                if name.startswith("band-"):
                    found.append(name[len("band-"):])
                else:
                    logger.warning("Pin directory %s has no scope file; ignoring", scope_dir)
        return found

    def all_pins(self) -> Dict[str, PinRecord]:
        """Every pin across all known scopes."""
        pins = {}
        for scope in self.scopes():
            record = self.get(scope)
            if record is not None:
                pins[scope] = record
        return pins
