"""Runtime framework resolver over ``shared/<framework>/<version>``."""

from typing import Optional

from constants import ComponentKinds, Constants

from ..catalog import VersionCatalog
from ..ordering import VersionOrdering
from .base import VersionResolver


class RuntimeVersionResolver(VersionResolver):
    """Resolver for one shared framework.

    Runtime binding always moves to the highest installed patch of the
    selected minor; only ``disable`` binds to the exact version.
    """

    def __init__(self, catalog: VersionCatalog, framework: Optional[str] = None,
                 ordering: Optional[VersionOrdering] = None):
        self.framework = framework or Constants.DEFAULT_FRAMEWORK
        super().__init__(catalog, ordering)

    @property
    def kind(self) -> ComponentKinds:
        """Return the runtime kind."""
        return ComponentKinds.RUNTIME

    @property
    def component_id(self) -> str:
        return self.framework
