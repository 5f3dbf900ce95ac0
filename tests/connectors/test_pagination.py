"""Tests for the shared paginated fetch engine in BaseConnector."""

from __future__ import annotations

import math
from dataclasses import replace

import httpx
import pytest

from _support import (
    FakeAPI,
    connector_class,
    cursor_pages,
    make_endpoint,
    make_platform,
    make_records,
    offset_pages,
    respond,
)
from saasbackup.catalog.models import EndpointOptions, PlatformEndpoint
from saasbackup.connectors.base import extract_records, normalize_entity_key
from saasbackup.core.errors import (
    AuthenticationError,
    DataShapeError,
    EndpointNotFoundError,
    PaginationLimitError,
    RequestTimeoutError,
    ServerError,
    TransientNetworkError,
)


def _connector(fake_api: FakeAPI, settings, *endpoints: PlatformEndpoint):
    platform = make_platform(*endpoints)
    return connector_class(platform)(
        {"api_key": "secret"},
        settings=settings,
        transport=fake_api.transport,
        rate_limit_delay=0.0,
    )


def _cursor_endpoint(name: str, limit: int) -> PlatformEndpoint:
    return PlatformEndpoint(
        name=name,
        path=f"/{name}",
        options=EndpointOptions(
            entity_key="data",
            limit_param="limit",
            limit=limit,
            cursor_param="starting_after",
            has_more_key="has_more",
        ),
    )


class TestOffsetPagination:
    """limit/offset paging that stops on a short page."""

    @pytest.mark.parametrize("total", [0, 1, 99, 100, 101, 250, 300])
    def test_returns_every_record_once(self, fake_api, settings, total):
        records = make_records(total)
        fake_api.route("/v1/items", offset_pages(records))
        with _connector(fake_api, settings, make_endpoint("items", limit=100)) as conn:
            fetched = conn.fetch("items")

        assert fetched == records
        # Without a reported total, a full last page needs one more (empty) probe.
        assert len(fake_api.calls("/v1/items")) == total // 100 + 1

    @pytest.mark.parametrize("total,page_size", [(0, 1), (1, 1), (10, 3), (12, 3), (250, 100), (7, 50)])
    def test_reported_total_gives_ceil_requests(self, fake_api, settings, total, page_size):
        endpoint = make_endpoint("items", limit=page_size)
        endpoint = replace(endpoint, options=replace(endpoint.options, total_key="count"))
        fake_api.route("/v1/items", offset_pages(make_records(total), total_key="count"))

        with _connector(fake_api, settings, endpoint) as conn:
            fetched = conn.fetch("items")

        assert len(fetched) == total
        assert len(fake_api.calls("/v1/items")) == max(1, math.ceil(total / page_size))

    def test_full_page_then_empty_page_terminates(self, fake_api, settings):
        fake_api.route("/v1/items", offset_pages(make_records(100)))
        with _connector(fake_api, settings, make_endpoint("items", limit=100)) as conn:
            fetched = conn.fetch("items")

        calls = fake_api.calls("/v1/items")
        assert len(fetched) == 100
        assert [c.url.params["offset"] for c in calls] == ["0", "100"]

    def test_offsets_advance_by_limit(self, fake_api, settings):
        fake_api.route("/v1/items", offset_pages(make_records(250)))
        with _connector(fake_api, settings, make_endpoint("items", limit=100)) as conn:
            conn.fetch("items")

        calls = fake_api.calls("/v1/items")
        assert [c.url.params["offset"] for c in calls] == ["0", "100", "200"]
        assert all(c.url.params["limit"] == "100" for c in calls)

    def test_default_page_size_when_endpoint_sets_none(self, fake_api, settings):
        endpoint = make_endpoint("items")
        endpoint = replace(endpoint, options=replace(endpoint.options, limit=0))
        fake_api.route("/v1/items", offset_pages(make_records(5)))
        with _connector(fake_api, settings, endpoint) as conn:
            conn.fetch("items")

        assert fake_api.calls("/v1/items")[0].url.params["limit"] == str(settings.default_page_size)

    def test_iter_pages_yields_per_page(self, fake_api, settings):
        fake_api.route("/v1/items", offset_pages(make_records(250)))
        with _connector(fake_api, settings, make_endpoint("items", limit=100)) as conn:
            sizes = [len(page) for page in conn.iter_pages("items")]

        assert sizes == [100, 100, 50]


class TestCursorPagination:
    """Stripe-style starting_after/has_more paging."""

    @pytest.mark.parametrize("total,page_size", [(0, 100), (1, 100), (100, 100), (250, 100), (9, 3)])
    def test_has_more_gives_ceil_requests(self, fake_api, settings, total, page_size):
        records = make_records(total)
        fake_api.route("/v1/charges", cursor_pages(records))
        with _connector(fake_api, settings, _cursor_endpoint("charges", page_size)) as conn:
            fetched = conn.fetch("charges")

        assert fetched == records
        assert len(fake_api.calls("/v1/charges")) == max(1, math.ceil(total / page_size))

    def test_cursor_is_last_record_id(self, fake_api, settings):
        fake_api.route("/v1/charges", cursor_pages(make_records(250)))
        with _connector(fake_api, settings, _cursor_endpoint("charges", 100)) as conn:
            conn.fetch("charges")

        cursors = [c.url.params.get("starting_after") for c in fake_api.calls("/v1/charges")]
        assert cursors == [None, "100", "200"]

    def test_missing_id_on_last_record_is_shape_error(self, fake_api, settings):
        fake_api.route(
            "/v1/charges",
            respond(200, {"data": [{"name": "no id"}], "has_more": True}),
        )
        with _connector(fake_api, settings, _cursor_endpoint("charges", 1)) as conn:
            with pytest.raises(DataShapeError) as exc_info:
                conn.fetch("charges")

        assert exc_info.value.path == "id"


class TestPaginationSafetyBound:
    def test_never_shrinking_provider_hits_max_pages(self, fake_api, settings):
        settings = settings.model_copy(update={"max_pages": 5})
        fake_api.route("/v1/items", respond(200, {"data": make_records(10)}))

        with _connector(fake_api, settings, make_endpoint("items", limit=10)) as conn:
            with pytest.raises(PaginationLimitError):
                conn.fetch("items")

        assert len(fake_api.calls("/v1/items")) == 5


class TestQueryBuilding:
    def test_extra_params_and_since_are_merged(self, fake_api, settings):
        endpoint = make_endpoint("items", incremental=True)
        endpoint = replace(endpoint, options=replace(endpoint.options, extra_params="status=all&expand=x"))
        fake_api.route("/v1/items", offset_pages(make_records(3)))

        with _connector(fake_api, settings, endpoint) as conn:
            conn.fetch("items", since="2026-01-01T00:00:00Z", params={"region": "eu"})

        params = fake_api.calls("/v1/items")[0].url.params
        assert params["status"] == "all"
        assert params["expand"] == "x"
        assert params["region"] == "eu"
        assert params["since"] == "2026-01-01T00:00:00Z"
        assert params["limit"] == "100"
        assert params["offset"] == "0"

    def test_since_ignored_without_since_param(self, fake_api, settings):
        fake_api.route("/v1/items", offset_pages(make_records(3)))
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            conn.fetch("items", since="123")

        assert "since" not in fake_api.calls("/v1/items")[0].url.params


class TestNonPaginatedEndpoints:
    def test_single_request_object_becomes_one_record(self, fake_api, settings):
        endpoint = PlatformEndpoint(name="setting", path="/setting", options=EndpointOptions(entity_key="$"))
        fake_api.route("/v1/setting", respond(200, {"timezone": "UTC", "currency": "USD"}))

        with _connector(fake_api, settings, endpoint) as conn:
            fetched = conn.fetch("setting")

        assert fetched == [{"timezone": "UTC", "currency": "USD"}]
        assert len(fake_api.calls("/v1/setting")) == 1
        assert "limit" not in fake_api.calls("/v1/setting")[0].url.params

    def test_single_request_list(self, fake_api, settings):
        endpoint = make_endpoint("tags", paginated=False)
        fake_api.route("/v1/tags", respond(200, {"data": make_records(150)}))

        with _connector(fake_api, settings, endpoint) as conn:
            assert len(conn.fetch("tags")) == 150

        assert len(fake_api.calls("/v1/tags")) == 1


class TestErrorsAbortTheEndpoint:
    def test_server_error_mid_fetch_keeps_no_partial_page(self, fake_api, settings):
        good = offset_pages(make_records(300))

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["offset"] == "100":
                return httpx.Response(503, json={"error": "unavailable"})
            return good(request)

        fake_api.route("/v1/items", handler)
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(ServerError) as exc_info:
                conn.fetch("items")

        assert exc_info.value.context.http_status == 503
        assert exc_info.value.context.endpoint == "items"
        assert len(fake_api.calls("/v1/items")) == 2

    @pytest.mark.parametrize(
        "status,error_type",
        [(401, AuthenticationError), (403, AuthenticationError), (404, EndpointNotFoundError)],
    )
    def test_status_maps_to_error(self, fake_api, settings, status, error_type):
        fake_api.route("/v1/items", respond(status))
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(error_type):
                conn.fetch("items")

    def test_missing_entity_key_is_shape_error(self, fake_api, settings):
        fake_api.route("/v1/items", respond(200, {"results": []}))
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(DataShapeError) as exc_info:
                conn.fetch("items")

        assert exc_info.value.path == "data"
        assert exc_info.value.retryable is False

    def test_invalid_json_is_shape_error(self, fake_api, settings):
        fake_api.route("/v1/items", lambda request: httpx.Response(200, content=b"<html>oops</html>"))
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(DataShapeError):
                conn.fetch("items")

    def test_timeout_is_transient(self, fake_api, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fake_api.route("/v1/items", handler)
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(RequestTimeoutError) as exc_info:
                conn.fetch("items")

        assert exc_info.value.retryable is True

    def test_connection_error_is_transient(self, fake_api, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_api.route("/v1/items", handler)
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(TransientNetworkError):
                conn.fetch("items")

    def test_undecodable_body_is_shape_error(self, fake_api, settings):
        fake_api.route(
            "/v1/items",
            lambda request: httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"),
        )
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(DataShapeError) as exc_info:
                conn.fetch("items")

        assert exc_info.value.retryable is False
        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)

    def test_redirect_loop_is_transient(self, fake_api, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        fake_api.route("/v1/items", handler)
        with _connector(fake_api, settings, make_endpoint("items")) as conn:
            with pytest.raises(TransientNetworkError):
                conn.fetch("items")


class TestEnvelopeHelpers:
    @pytest.mark.parametrize(
        "key,expected",
        [(None, "data"), ("", "data"), ("$", ""), ("$.contacts", "contacts"), ("a.b", "a.b")],
    )
    def test_normalize_entity_key(self, key, expected):
        assert normalize_entity_key(key) == expected

    def test_dotted_entity_key(self):
        payload = {"result": {"items": [{"id": 1}]}}
        assert extract_records(payload, "$.result.items") == [{"id": 1}]

    def test_top_level_list(self):
        assert extract_records([{"id": 1}, {"id": 2}], "anything") == [{"id": 1}, {"id": 2}]

    def test_object_rejected_for_paginated(self):
        with pytest.raises(DataShapeError):
            extract_records({"data": {"id": 1}}, "data")
