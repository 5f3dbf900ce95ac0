"""
Shared test helpers: a fake HTTP API and a fake platform/connector pair.

- FakeAPI: an httpx.MockTransport router that records every request
- offset_pages / cursor_pages: paged handlers over a record list
- make_endpoint / make_platform / connector_class: catalog fixtures
- make_source: a Source bound to ``conn-1``
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import httpx

from saasbackup.catalog.models import (
    AuthType,
    EndpointOptions,
    Platform,
    PlatformEndpoint,
    ResponseMapping,
)
from saasbackup.catalog.sources import PlatformSource, Source, SourceSettings
from saasbackup.connectors.auth import AuthConfig, AuthStyle, resolve_credential
from saasbackup.connectors.base import BaseConnector

FAKE_BASE_URL = "https://api.fake.test/v1"

Handler = Callable[[httpx.Request], httpx.Response]


# =============================================================================
# Fake HTTP API
# =============================================================================


class FakeAPI:
    """Routes requests by URL path and remembers every request it saw."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(self, path: str, handler: Handler) -> FakeAPI:
        self.routes[path] = handler
        return self

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"message": f"no route for {request.url.path}"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_records(count: int, *, start: int = 1, **extra: Any) -> list[dict[str, Any]]:
    return [{"id": str(i), "name": f"record-{i}", **extra} for i in range(start, start + count)]


def offset_pages(
    records: Sequence[dict[str, Any]],
    *,
    entity_key: str = "data",
    total_key: str | None = None,
) -> Handler:
    """limit/offset pages of *records* under *entity_key*."""

    def handler(request: httpx.Request) -> httpx.Response:
        limit = int(request.url.params.get("limit", "100"))
        offset = int(request.url.params.get("offset", "0"))
        body: dict[str, Any] = {entity_key: list(records[offset:offset + limit])}
        if total_key:
            body[total_key] = len(records)
        return httpx.Response(200, json=body)

    return handler


def cursor_pages(records: Sequence[dict[str, Any]]) -> Handler:
    """Stripe-style list pages: ``starting_after`` cursor and ``has_more``."""

    def handler(request: httpx.Request) -> httpx.Response:
        limit = int(request.url.params.get("limit", "100"))
        after = request.url.params.get("starting_after")
        start = 0
        if after is not None:
            start = next(i for i, r in enumerate(records) if r["id"] == after) + 1
        page = list(records[start:start + limit])
        return httpx.Response(
            200,
            json={"object": "list", "data": page, "has_more": start + limit < len(records)},
        )

    return handler


def respond(status: int, body: Any = None, headers: dict[str, str] | None = None) -> Handler:
    """Always answer *status*."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body if body is not None else {"status": status}, headers=headers)

    return handler


def fail_then(status: int, times: int, then: Handler) -> Handler:
    """Answer *status* for the first *times* calls, then delegate to *then*."""
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] <= times:
            return httpx.Response(status, json={"status": status})
        return then(request)

    return handler


# =============================================================================
# Fake platform and connector
# =============================================================================


def make_endpoint(
    name: str,
    *,
    dependencies: Sequence[str] = (),
    limit: int = 100,
    paginated: bool = True,
    incremental: bool = False,
    timestamp_field: str = "updated_at",
    field_mappings: dict[str, str] | None = None,
    default_enabled: bool = True,
) -> PlatformEndpoint:
    return PlatformEndpoint(
        name=name,
        path=f"/{name}",
        description=f"{name} records",
        data_type=name,
        default_enabled=default_enabled,
        supports_incremental=incremental,
        dependencies=tuple(dependencies),
        response_mapping=ResponseMapping(
            data_path="$.data",
            timestamp_field=timestamp_field if incremental else "",
            field_mappings=field_mappings or {},
        ),
        options=EndpointOptions(
            entity_key="data",
            limit_param="limit" if paginated else None,
            offset_param="offset" if paginated else None,
            limit=limit if paginated else 0,
            since_param="since" if incremental else None,
        ),
    )


def make_platform(*endpoints: PlatformEndpoint, platform_type: str = "fake") -> Platform:
    return Platform(
        platform_type=platform_type,
        name="Fake",
        base_url=FAKE_BASE_URL,
        auth_type=AuthType.API_KEY,
        test_path="/me",
        endpoints=endpoints,
    )


class FakeConnector(BaseConnector):
    """Connector over a test platform: API key (bearer or header) or basic auth."""

    platform = make_platform(make_endpoint("items"))
    credential_aliases = ("api_key", "token")

    @classmethod
    def build_auth(cls, credentials: dict[str, Any]) -> AuthConfig:
        if credentials.get("username"):
            return AuthConfig.basic_auth(credentials["username"], credentials.get("password", ""))
        field_name, token = resolve_credential(credentials, cls.credential_aliases, platform=cls.platform.name)
        style = AuthStyle.HEADER if credentials.get("auth_style") == "header" else AuthStyle.BEARER
        return AuthConfig.api_key_auth(token, style=style, source_field=field_name)


def connector_class(platform: Platform) -> type[FakeConnector]:
    return type(f"{platform.platform_type.title()}Connector", (FakeConnector,), {"platform": platform})


def make_source(
    platform_type: str = "fake",
    endpoints: list[str] | None = None,
    *,
    source_id: str = "src-1",
    connection_id: str = "conn-1",
    **settings: Any,
) -> Source:
    return Source(
        source_id=source_id,
        name=f"{platform_type} backup",
        connection_id=connection_id,
        template=PlatformSource(platform_source_id=f"{platform_type}-default", platform_type=platform_type, name="Default"),
        settings=SourceSettings(enabled_endpoints=endpoints, **settings),
    )


