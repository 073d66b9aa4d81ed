"""Version resolvers for the different component kinds."""

from .base import VersionResolver
from .sdk import SdkVersionResolver
from .runtime import RuntimeVersionResolver
from .workload_set import WorkloadSetVersionResolver

__all__ = [
    "VersionResolver",
    "SdkVersionResolver",
    "RuntimeVersionResolver",
    "WorkloadSetVersionResolver",
]
