"""Endpoint catalog: platforms, endpoints, dependency DAG and user sources."""

from saasbackup.catalog.exceptions import (
    CatalogError,
    CycleDetectedError,
    DependencyError,
    DuplicateRegistrationError,
    UnknownEndpointError,
    UnknownPlatformError,
)
from saasbackup.catalog.models import (
    APIParameter,
    AuthType,
    EndpointDescriptor,
    EndpointOptions,
    PaginationStyle,
    Platform,
    PlatformEndpoint,
    RateLimitPolicy,
    ResponseMapping,
)
from saasbackup.catalog.registry import CatalogBuilder, EndpointCatalog, default_catalog
from saasbackup.catalog.sources import PlatformConnection, PlatformSource, Source, SourceSettings

__all__ = [
    # models
    "APIParameter",
    "AuthType",
    "EndpointDescriptor",
    "EndpointOptions",
    "PaginationStyle",
    "Platform",
    "PlatformEndpoint",
    "RateLimitPolicy",
    "ResponseMapping",
    # registry
    "CatalogBuilder",
    "EndpointCatalog",
    "default_catalog",
    # sources
    "PlatformConnection",
    "PlatformSource",
    "Source",
    "SourceSettings",
    # errors
    "CatalogError",
    "CycleDetectedError",
    "DependencyError",
    "DuplicateRegistrationError",
    "UnknownEndpointError",
    "UnknownPlatformError",
]
