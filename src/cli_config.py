"""CLI configuration: logging setup, runtime tunable overrides and deadlines.

Kept out of dotbind.py so the entrypoint stays slim. CLI values are
applied last and win over the YAML tool config and the environment.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from constants import Constants, _load_yaml_config
from common.file_ops import NO_DEADLINE, Deadline
from common.logging_utils import add_file_handler, configure_logging

logger = logging.getLogger(__name__)


def setup_logging(args: Any) -> None:
    """Configure the root logger from --loglevel and --logfile."""
    level = getattr(args, "LOG_LEVEL", None)
    if level:
        os.environ[Constants.ENV_LOG_LEVEL] = str(level).upper()
    configure_logging(level)

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        add_file_handler(log_file)
        logger.info("Logging to file: %s", log_file)


def apply_runtime_overrides(args: Any) -> None:
    """Load the tool config, then apply CLI tunables on top of it."""
    applied = _load_yaml_config()
    if applied:
        logger.debug("Applied tool config keys: %s", ", ".join(sorted(applied)))

    lock_timeout = getattr(args, "LOCK_TIMEOUT", None)
    if lock_timeout is not None:
        if lock_timeout < 0:
            raise ValueError("--lock-timeout must not be negative")
        Constants.LOCK_TIMEOUT_SEC = float(lock_timeout)
    retries = getattr(args, "RETRIES", None)
    if retries is not None:
        if retries < 1:
            raise ValueError("--retries must be at least 1")
        Constants.RETRY_MAX = int(retries)


def deadline_from_args(args: Any) -> Deadline:
    """Deadline for the whole command, or none when --timeout is absent."""
    timeout = getattr(args, "TIMEOUT", None)
    if timeout is None:
        return NO_DEADLINE
    if timeout <= 0:
        raise ValueError("--timeout must be positive")
    return Deadline(timeout)
