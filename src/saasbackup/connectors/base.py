"""
Connector contract and the shared paginated fetch engine.

Every platform connector exposes the same small capability surface
(:class:`Connector`): a cheap authenticated ``test()``, ``list_endpoints()``
for introspection, and ``fetch()`` returning every record of one endpoint.
:class:`BaseConnector` implements all of it once; a platform subclass only
declares its :class:`~saasbackup.catalog.models.Platform` (base URL, rate
limits, endpoints) and how to turn a credential map into an
:class:`~saasbackup.connectors.auth.AuthConfig`.

Manifesto:
    - **One client per connector:** headers, auth, timeout and rate limiter
      are fixed at construction and never mutated during a fetch
    - **All or nothing per endpoint:** any network error or non-2xx status
      aborts the endpoint; no partial page is returned
    - **Pagination must terminate:** short page, has-more flag, reported
      total, or the ``max_pages`` safety bound

Architecture:
    ::

        fetch(endpoint, since, params)
          └── iter_pages()                       (lazy; fetch() materialises)
                loop page = 1..max_pages
                  query = extra_params + params + since + limit/offset|cursor
                  _request(url, query)
                    ├── rate_limiter.acquire()   ← delay between ANY two requests
                    ├── httpx GET                ← timeout → RequestTimeoutError
                    ├── non-2xx → error_for_status()  (401/403, 404, 429, 5xx, ...)
                    └── JSON decode              ← DataShapeError
                  extract_records(payload, entity_key)
                  stop: non-paginated | short page | has_more=false | total reached
                raise PaginationLimitError if the bound is hit

Examples:
    >>> with StripeConnector({"api_key": "sk_test_123"}) as stripe:
    ...     stripe.test()
    ...     customers = stripe.fetch("customers")

Tags:
    connector, pagination, httpx, rate-limit, auth, saasbackup
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from typing import Any, ClassVar, Protocol, runtime_checkable
from urllib.parse import parse_qsl

import httpx

from saasbackup.catalog.models import EndpointDescriptor, EndpointOptions, PaginationStyle, Platform
from saasbackup.connectors.auth import AuthConfig
from saasbackup.connectors.rate_limit import RateLimiter, limiter_for
from saasbackup.core.errors import (
    ConfigurationError,
    DataShapeError,
    ErrorContext,
    PaginationLimitError,
    RequestTimeoutError,
    TransientNetworkError,
    error_for_status,
)
from saasbackup.core.logging import get_logger
from saasbackup.core.settings import EngineSettings, get_settings

logger = get_logger(__name__)

DEFAULT_ENTITY_KEY = "data"

_MISSING = object()


@runtime_checkable
class Connector(Protocol):
    """Capability interface every platform connector satisfies."""

    @property
    def name(self) -> str: ...

    @property
    def platform_type(self) -> str: ...

    def test(self) -> None: ...

    def list_endpoints(self) -> list[EndpointDescriptor]: ...

    def fetch(
        self,
        endpoint: EndpointDescriptor | str,
        since: str | None = None,
        params: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...


# =============================================================================
# Envelope helpers
# =============================================================================


def normalize_entity_key(entity_key: str | None) -> str:
    """``None``/empty → ``"data"``; ``"$.a.b"`` → ``"a.b"``; ``"$"`` → ``""`` (root)."""
    if not entity_key:
        return DEFAULT_ENTITY_KEY
    if entity_key == "$":
        return ""
    if entity_key.startswith("$."):
        return entity_key[2:]
    return entity_key


def lookup_path(payload: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts; ``_MISSING`` if absent."""
    value = payload
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def extract_records(payload: Any, entity_key: str | None, *, allow_object: bool = False) -> list[dict[str, Any]]:
    """Locate the record array in a JSON envelope.

    A bare JSON array is the record list itself. With *allow_object* (single
    request endpoints such as settings lookups), an object at the entity key
    is returned as one record.

    Raises:
        DataShapeError: the path is missing or does not hold records.
    """
    if isinstance(payload, list):
        return payload
    path = normalize_entity_key(entity_key)
    value = payload if path == "" else lookup_path(payload, path)
    if value is _MISSING:
        raise DataShapeError(f"Response has no '{path}' field", path=path)
    if isinstance(value, list):
        return value
    if allow_object and isinstance(value, dict):
        return [value]
    raise DataShapeError(
        f"Expected a list at '{path or '$'}', got {type(value).__name__}",
        path=path or "$",
    )


def parse_extra_params(extra: str) -> list[tuple[str, str]]:
    """Split a static ``a=b&c=d`` query string into pairs."""
    return parse_qsl(extra, keep_blank_values=True) if extra else []


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


# =============================================================================
# Base fetch engine
# =============================================================================


class BaseConnector(ABC):
    """
    Shared implementation of :class:`Connector` over one ``httpx.Client``.

    Subclasses set ``platform`` and implement :meth:`build_auth`. Credential
    validation runs in ``__init__`` before the client exists, so a bad key
    never reaches the network.

    Args:
        credentials: Raw credential map from the credential resolver.
        settings: Engine settings (defaults to process settings).
        timeout: Per-request timeout in seconds (default 30).
        rate_limit_delay: Override the platform-derived gap between requests.
        rate_limiter: Supply a limiter outright (e.g. a token bucket).
        transport: httpx transport, e.g. ``httpx.MockTransport`` in tests.
        custom_headers: Extra headers sent on every request.
        base_url: Override the platform base URL (sandboxes, proxies).
    """

    platform: ClassVar[Platform]
    credential_aliases: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        credentials: Mapping[str, Any],
        *,
        settings: EngineSettings | None = None,
        timeout: float | None = None,
        rate_limit_delay: float | None = None,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.BaseTransport | None = None,
        custom_headers: Mapping[str, str] | None = None,
        base_url: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.auth: AuthConfig = self.build_auth(dict(credentials or {}))
        self.base_url = (base_url or self.platform.base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else self.settings.http_timeout_seconds
        self.rate_limiter = rate_limiter or limiter_for(self.platform.rate_limits, min_interval=rate_limit_delay)
        self.request_count = 0

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.settings.user_agent,
            **dict(custom_headers or {}),
            **self.auth.headers(),
        }
        self._client = httpx.Client(
            headers=headers,
            auth=self.auth.httpx_auth(),
            timeout=self.timeout,
            transport=transport,
        )
        self._descriptors = {e.name: e.to_descriptor(self.base_url) for e in self.platform.endpoints}

        logger.debug(
            "connector.created",
            platform=self.platform_type,
            auth_type=self.auth.type.value,
            credential_field=self.auth.source_field,
            timeout=self.timeout,
        )

    @classmethod
    @abstractmethod
    def build_auth(cls, credentials: dict[str, Any]) -> AuthConfig:
        """Resolve and validate credentials. Must not touch the network."""
        ...

    # -- identity ------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.platform.name

    @property
    def platform_type(self) -> str:
        return self.platform.platform_type

    # -- contract ------------------------------------------------------------

    def test(self) -> None:
        """One authenticated GET against the platform's cheap test endpoint."""
        test_path = self.platform.test_path
        if test_path.startswith(("http://", "https://")):
            url = test_path
        else:
            url = f"{self.base_url}/{test_path.lstrip('/')}"
        self._request(url, {})
        logger.info("connector.test_passed", platform=self.platform_type)

    def list_endpoints(self) -> list[EndpointDescriptor]:
        return list(self._descriptors.values())

    def get_endpoint(self, name: str) -> EndpointDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            raise ConfigurationError(
                f"{self.name} has no endpoint '{name}'. Available: {', '.join(self._descriptors)}"
            ).with_context(platform=self.platform_type, endpoint=name) from None

    def fetch(
        self,
        endpoint: EndpointDescriptor | str,
        since: str | None = None,
        params: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """All records of *endpoint*, fully materialised."""
        records: list[dict[str, Any]] = []
        for page in self.iter_pages(endpoint, since=since, params=params):
            records.extend(page)
        return records

    def iter_pages(
        self,
        endpoint: EndpointDescriptor | str,
        since: str | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Iterator[list[dict[str, Any]]]:
        """Yield one list of records per page, lazily."""
        descriptor = self.get_endpoint(endpoint) if isinstance(endpoint, str) else endpoint
        opts = descriptor.options
        style = opts.pagination
        limit = opts.limit or self.settings.default_page_size
        base_query = self._base_query(descriptor, since, params)

        offset = 0
        cursor: str | None = None
        fetched = 0
        for page_number in itertools.count(1):
            if page_number > self.settings.max_pages:
                raise PaginationLimitError(
                    f"{descriptor.name} did not finish within {self.settings.max_pages} pages",
                    context=ErrorContext(platform=self.platform_type, endpoint=descriptor.name, url=descriptor.url),
                )

            query = list(base_query)
            if opts.limit_param:
                query.append((opts.limit_param, str(limit)))
            if style is PaginationStyle.OFFSET:
                query.append((opts.offset_param, str(offset)))
            elif style is PaginationStyle.CURSOR and cursor is not None:
                query.append((opts.cursor_param, cursor))

            payload = self._request(descriptor.url, query, endpoint=descriptor.name)
            try:
                records = extract_records(payload, opts.entity_key, allow_object=not opts.is_paginated)
            except DataShapeError as e:
                e.with_context(platform=self.platform_type, endpoint=descriptor.name, url=descriptor.url)
                logger.error("connector.bad_shape", platform=self.platform_type, endpoint=descriptor.name, path=e.path)
                raise

            fetched += len(records)
            logger.debug(
                "connector.page_fetched",
                platform=self.platform_type,
                endpoint=descriptor.name,
                page=page_number,
                records=len(records),
                offset=offset,
            )
            yield records

            if not self._has_next_page(payload, records, opts, limit, fetched):
                return
            if style is PaginationStyle.OFFSET:
                offset += limit
            else:
                cursor = self._next_cursor(records, opts, descriptor)

    # -- internals -----------------------------------------------------------

    def _base_query(
        self,
        descriptor: EndpointDescriptor,
        since: str | None,
        params: Mapping[str, str] | None,
    ) -> list[tuple[str, str]]:
        merged: dict[str, str] = dict(parse_extra_params(descriptor.options.extra_params))
        merged.update({k: str(v) for k, v in (params or {}).items()})
        if since is not None:
            if descriptor.options.since_param:
                merged[descriptor.options.since_param] = since
            else:
                logger.debug("connector.since_ignored", platform=self.platform_type, endpoint=descriptor.name)
        return list(merged.items())

    @staticmethod
    def _has_next_page(
        payload: Any,
        records: list[dict[str, Any]],
        opts: EndpointOptions,
        limit: int,
        fetched: int,
    ) -> bool:
        if not opts.is_paginated:
            return False
        if len(records) < limit:
            return False
        if opts.has_more_key:
            has_more = lookup_path(payload, opts.has_more_key)
            if has_more is not _MISSING:
                return bool(has_more)
        if opts.total_key:
            total = lookup_path(payload, opts.total_key)
            if isinstance(total, int) and not isinstance(total, bool):
                return fetched < total
        return True

    def _next_cursor(
        self,
        records: list[dict[str, Any]],
        opts: EndpointOptions,
        descriptor: EndpointDescriptor,
    ) -> str:
        last = records[-1]
        value = last.get(opts.id_field) if isinstance(last, Mapping) else None
        if value is None:
            raise DataShapeError(
                f"Cannot continue {descriptor.name}: last record has no '{opts.id_field}'",
                path=opts.id_field,
                context=ErrorContext(platform=self.platform_type, endpoint=descriptor.name, url=descriptor.url),
            )
        return str(value)

    def _request(self, url: str, query: list[tuple[str, str]] | dict[str, str], *, endpoint: str | None = None) -> Any:
        """Rate-limited GET returning decoded JSON, or a typed error."""
        self.rate_limiter.acquire(block=True)
        self.request_count += 1
        context = ErrorContext(platform=self.platform_type, endpoint=endpoint, url=url)
        try:
            response = self._client.get(url, params=query)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request to {url} timed out after {self.timeout}s", context=context, cause=e) from e
        except httpx.DecodingError as e:
            raise DataShapeError(f"Response from {url} could not be decoded: {e}", context=context, cause=e) from e
        except httpx.RequestError as e:
            raise TransientNetworkError(f"Network error calling {url}: {e}", context=context, cause=e) from e

        if not response.is_success:
            error = error_for_status(
                response.status_code,
                url=url,
                platform=self.platform_type,
                body=response.text,
                retry_after=_retry_after(response),
            )
            error.with_context(endpoint=endpoint)
            logger.warning(
                "connector.http_error",
                platform=self.platform_type,
                endpoint=endpoint,
                status=response.status_code,
                error_type=type(error).__name__,
            )
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise DataShapeError(f"Response from {url} is not valid JSON", context=context, cause=e) from e

    # -- lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BaseConnector:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(platform={self.platform_type!r}, auth={self.auth!r})"


__all__ = [
    "Connector",
    "BaseConnector",
    "DEFAULT_ENTITY_KEY",
    "extract_records",
    "lookup_path",
    "normalize_entity_key",
    "parse_extra_params",
]
