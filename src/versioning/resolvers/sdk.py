"""SDK resolver: global.json style selection over ``sdk/<version>``."""

from constants import ComponentKinds, Constants

from .base import VersionResolver


class SdkVersionResolver(VersionResolver):
    """Resolver for SDKs."""

    @property
    def kind(self) -> ComponentKinds:
        """Return the SDK kind."""
        return ComponentKinds.SDK

    @property
    def component_id(self) -> str:
        return Constants.DEFAULT_SDK_COMPONENT
