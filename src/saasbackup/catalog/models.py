"""
Endpoint catalog data model.

Static, per-platform metadata describing which resources can be extracted,
how each one paginates, and which endpoints must run before which. All of
it is immutable: catalogs are built once at startup and only read after.

Architecture:
    ::

        Platform (keap, stripe, ...)
        ├── base_url, auth_type, test_path
        ├── RateLimitPolicy          → connector rate-limit delay
        └── endpoints: tuple[PlatformEndpoint, ...]
              ├── EndpointOptions    → pagination, entity key, extra params
              ├── ResponseMapping    → id / timestamp fields, field renames
              ├── parameters         → APIParameter list (introspection)
              └── dependencies       → names of prerequisite endpoints (DAG)

        PlatformEndpoint.to_descriptor(base_url) → EndpointDescriptor
            {name, url, description, options:{entityKey, limitParam,
             offsetParam, limit, extraParams}}

Invariants:
    - endpoint names are unique within a platform
    - dependencies name endpoints of the same platform and form a DAG
      (enforced by CatalogBuilder, not here)
    - tuple-valued fields normalise lists passed by callers

Tags:
    catalog, endpoint, pagination, platform, saasbackup
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any


class AuthType(str, Enum):
    """How a platform authenticates requests."""

    API_KEY = "api_key"
    BASIC = "basic"
    OAUTH = "oauth"


class PaginationStyle(str, Enum):
    """How an endpoint walks through pages."""

    NONE = "none"        # single request (settings lookups)
    OFFSET = "offset"    # limit/offset, stop on a short page
    CURSOR = "cursor"    # limit + "starting after <last id>", stop on has_more=false


# =============================================================================
# Pagination options and the stable descriptor shape
# =============================================================================


@dataclass(frozen=True)
class EndpointOptions:
    """
    Fetch options for one endpoint.

    Attributes:
        entity_key: Path to the record array in the JSON envelope. Dotted
            paths are allowed; ``None`` falls back to ``"data"``.
        limit_param: Query parameter carrying the page size.
        offset_param: Query parameter carrying the offset (offset paging).
        limit: Page size. 0 means "use the engine default" (100).
        extra_params: Static ``a=b&c=d`` query string merged into every request.
        cursor_param: Query parameter carrying the last seen id (cursor paging).
        has_more_key: Envelope flag saying another page exists (cursor paging).
        since_param: Query parameter carrying the incremental watermark.
        id_field: Record field used as the cursor value.
        total_key: Envelope field holding the total record count, if reported.
    """

    entity_key: str | None = None
    limit_param: str | None = None
    offset_param: str | None = None
    limit: int = 0
    extra_params: str = ""
    cursor_param: str | None = None
    has_more_key: str | None = None
    since_param: str | None = None
    id_field: str = "id"
    total_key: str | None = None

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")

    @property
    def pagination(self) -> PaginationStyle:
        if self.cursor_param:
            return PaginationStyle.CURSOR
        if self.offset_param:
            return PaginationStyle.OFFSET
        return PaginationStyle.NONE

    @property
    def is_paginated(self) -> bool:
        return self.pagination is not PaginationStyle.NONE

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "entityKey": self.entity_key or "",
            "limitParam": self.limit_param or "",
            "offsetParam": self.offset_param or "",
            "limit": self.limit,
            "extraParams": self.extra_params,
        }
        if self.cursor_param:
            result["cursorParam"] = self.cursor_param
        if self.has_more_key:
            result["hasMoreKey"] = self.has_more_key
        if self.since_param:
            result["sinceParam"] = self.since_param
        if self.total_key:
            result["totalKey"] = self.total_key
        return result


@dataclass(frozen=True)
class EndpointDescriptor:
    """What a connector exposes per endpoint: the stable, introspectable shape."""

    name: str
    url: str
    description: str = ""
    options: EndpointOptions = field(default_factory=EndpointOptions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "options": self.options.to_dict(),
        }


# =============================================================================
# Catalog entries
# =============================================================================


@dataclass(frozen=True)
class APIParameter:
    """A query parameter an endpoint accepts (for introspection and UIs)."""

    name: str
    type: str = "string"  # string|integer|boolean|datetime
    required: bool = False
    default: str = ""
    description: str = ""


@dataclass(frozen=True)
class ResponseMapping:
    """How to read records out of an endpoint's response.

    Attributes:
        data_path: JSONPath-ish location of the record array (``$.contacts``).
        id_field: Unique id field of each record.
        timestamp_field: Field holding the incremental timestamp, if any.
        pagination_key: Envelope field driving pagination (informational).
        field_mappings: Renames applied to each record before persistence.
    """

    data_path: str = ""
    id_field: str = "id"
    timestamp_field: str = ""
    pagination_key: str = ""
    field_mappings: dict[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash((self.data_path, self.id_field, self.timestamp_field, self.pagination_key))

    def apply(self, record: dict[str, Any]) -> dict[str, Any]:
        """Return *record* with ``field_mappings`` renames applied."""
        if not self.field_mappings:
            return record
        return {self.field_mappings.get(k, k): v for k, v in record.items()}


@dataclass(frozen=True)
class RateLimitPolicy:
    """A provider's published throughput limits. Zero means "not published"."""

    requests_per_second: float = 0
    requests_per_minute: int = 0
    requests_per_hour: int = 0
    burst_limit: int = 0

    @property
    def min_interval(self) -> float:
        """Smallest gap between requests that respects every published limit."""
        intervals = [0.0]
        if self.requests_per_second:
            intervals.append(1.0 / self.requests_per_second)
        if self.requests_per_minute:
            intervals.append(60.0 / self.requests_per_minute)
        if self.requests_per_hour:
            intervals.append(3600.0 / self.requests_per_hour)
        return max(intervals)


@dataclass(frozen=True)
class PlatformEndpoint:
    """
    One extractable resource of a platform.

    Attributes:
        name: Unique name within the platform (``contacts``, ``orders``)
        path: Path relative to the platform base URL, or an absolute URL
        description: Human-readable description
        method: HTTP method (only GET is fetched)
        data_type: Kind of data (contacts, orders, settings, ...)
        default_enabled: Included when a Source selects no endpoints
        default_priority: high|medium|low
        default_frequency: hourly|daily|weekly
        supports_incremental: Accepts a since-filter built from a watermark
        dependencies: Endpoint names that must finish first
        parameters: Accepted query parameters
        response_mapping: Record layout and field renames
        options: Pagination / entity key / extra query options
    """

    name: str
    path: str
    description: str = ""
    method: str = "GET"
    data_type: str = ""
    default_enabled: bool = True
    default_priority: str = "medium"
    default_frequency: str = "daily"
    supports_incremental: bool = False
    dependencies: tuple[str, ...] = field(default_factory=tuple)
    parameters: tuple[APIParameter, ...] = field(default_factory=tuple)
    response_mapping: ResponseMapping = field(default_factory=ResponseMapping)
    options: EndpointOptions = field(default_factory=EndpointOptions)

    def __post_init__(self):
        # Normalize list inputs to tuples for immutability
        if isinstance(self.dependencies, (list, set, frozenset)):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))
        if isinstance(self.parameters, list):
            object.__setattr__(self, "parameters", tuple(self.parameters))
        if self.name in self.dependencies:
            raise ValueError(f"Endpoint '{self.name}' cannot depend on itself")

    @property
    def entity_key(self) -> str | None:
        return self.options.entity_key or self.response_mapping.data_path or None

    def url_for(self, base_url: str) -> str:
        if self.path.startswith(("http://", "https://")):
            return self.path
        return f"{base_url.rstrip('/')}/{self.path.lstrip('/')}"

    def to_descriptor(self, base_url: str) -> EndpointDescriptor:
        options = self.options
        if options.entity_key is None and self.entity_key is not None:
            options = replace(options, entity_key=self.entity_key)
        return EndpointDescriptor(
            name=self.name,
            url=self.url_for(base_url),
            description=self.description,
            options=options,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "method": self.method,
            "dataType": self.data_type,
            "defaultEnabled": self.default_enabled,
            "defaultPriority": self.default_priority,
            "defaultFrequency": self.default_frequency,
            "supportsIncremental": self.supports_incremental,
            "dependencies": list(self.dependencies),
        }
        if self.parameters:
            result["parameters"] = [asdict(p) for p in self.parameters]
        if self.response_mapping.timestamp_field:
            result["timestampField"] = self.response_mapping.timestamp_field
        return result


@dataclass(frozen=True)
class Platform:
    """A supported provider and its slice of the endpoint catalog."""

    platform_type: str
    name: str
    base_url: str
    auth_type: AuthType
    test_path: str
    category: str = ""
    description: str = ""
    rate_limits: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    endpoints: tuple[PlatformEndpoint, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if isinstance(self.endpoints, list):
            object.__setattr__(self, "endpoints", tuple(self.endpoints))

    @property
    def endpoint_names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self.endpoints)

    @property
    def test_url(self) -> str:
        if self.test_path.startswith(("http://", "https://")):
            return self.test_path
        return f"{self.base_url.rstrip('/')}/{self.test_path.lstrip('/')}"

    def descriptors(self) -> list[EndpointDescriptor]:
        return [e.to_descriptor(self.base_url) for e in self.endpoints]


__all__ = [
    "AuthType",
    "PaginationStyle",
    "EndpointOptions",
    "EndpointDescriptor",
    "APIParameter",
    "ResponseMapping",
    "RateLimitPolicy",
    "PlatformEndpoint",
    "Platform",
]
