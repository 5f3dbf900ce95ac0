"""
Connector registry: platform-type string → connector constructor.

Each platform is one variant registered under its ``platform_type``.
Registering a connector also registers its
:class:`~saasbackup.catalog.models.Platform` with the endpoint catalog, so a
platform whose endpoint dependencies contain a cycle is rejected here, at
registration, and never becomes constructible.

The shipped registry (keap, stripe) is built once by
:func:`default_registry`. Tests and embedders build their own
:class:`ConnectorRegistry` instead of mutating the shared one.

Examples:
    >>> registry = default_registry()
    >>> registry.list_platforms()
    ['keap', 'stripe']
    >>> stripe = registry.create("stripe", {"api_key": "sk_test_abc"})
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from saasbackup.catalog.exceptions import DuplicateRegistrationError, UnknownPlatformError
from saasbackup.catalog.models import Platform
from saasbackup.catalog.registry import CatalogBuilder, EndpointCatalog
from saasbackup.connectors.base import BaseConnector, Connector
from saasbackup.core.logging import get_logger

logger = get_logger(__name__)

ConnectorFactory = Callable[..., Connector]


class ConnectorRegistry:
    """Maps platform types to connector factories and owns their catalog."""

    def __init__(self) -> None:
        self._factories: dict[str, ConnectorFactory] = {}
        self._builder = CatalogBuilder()
        self._catalog: EndpointCatalog | None = None

    def register(self, platform: Platform, factory: ConnectorFactory) -> ConnectorRegistry:
        """Register *factory* for *platform*. Validates the platform's catalog first."""
        if platform.platform_type in self._factories:
            raise DuplicateRegistrationError(f"Connector '{platform.platform_type}' is already registered")
        self._builder.register(platform)
        self._factories[platform.platform_type] = factory
        self._catalog = None
        logger.debug("registry.connector_registered", platform=platform.platform_type, factory=getattr(factory, "__name__", repr(factory)))
        return self

    def register_connector(self, connector_cls: type[BaseConnector]) -> type[BaseConnector]:
        """Register a :class:`BaseConnector` subclass; usable as a decorator."""
        self.register(connector_cls.platform, connector_cls)
        return connector_cls

    @property
    def catalog(self) -> EndpointCatalog:
        if self._catalog is None:
            self._catalog = self._builder.build()
        return self._catalog

    @property
    def factories(self) -> Mapping[str, ConnectorFactory]:
        return MappingProxyType(self._factories)

    def get_factory(self, platform_type: str) -> ConnectorFactory:
        try:
            return self._factories[platform_type]
        except KeyError:
            raise UnknownPlatformError(platform_type, list(self._factories)) from None

    def create(self, platform_type: str, credentials: Mapping[str, Any], **options: Any) -> Connector:
        """Construct a connector. Credential problems raise before any request."""
        return self.get_factory(platform_type)(credentials, **options)

    def list_platforms(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, platform_type: object) -> bool:
        return platform_type in self._factories


@lru_cache(maxsize=1)
def default_registry() -> ConnectorRegistry:
    """Registry of every connector shipped with the engine, built once."""
    from saasbackup.connectors.keap import KeapConnector
    from saasbackup.connectors.stripe import StripeConnector

    registry = ConnectorRegistry()
    registry.register_connector(KeapConnector)
    registry.register_connector(StripeConnector)
    logger.debug("registry.loaded", registered=len(registry.factories))
    return registry


def get_connector(platform_type: str, credentials: Mapping[str, Any], **options: Any) -> Connector:
    """Shortcut for ``default_registry().create(...)``."""
    return default_registry().create(platform_type, credentials, **options)


def list_connectors() -> list[str]:
    return default_registry().list_platforms()


__all__ = [
    "ConnectorFactory",
    "ConnectorRegistry",
    "default_registry",
    "get_connector",
    "list_connectors",
]
