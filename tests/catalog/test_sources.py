"""Tests for connections, templates and sources."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from saasbackup.catalog.sources import (
    ConnectionStatus,
    PlatformConnection,
    PlatformSource,
    Source,
    SourceSettings,
    SourceStatus,
)


@pytest.fixture
def template():
    return PlatformSource(
        platform_source_id="keap-crm",
        platform_type="keap",
        name="Keap CRM",
        endpoints=["contacts", "orders"],
        default_settings=SourceSettings(custom_params={"a": "1", "b": "2"}, incremental_sync=False, retention_days=90),
    )


class TestSource:
    def test_from_json(self, template):
        source = Source.model_validate_json(
            '{"source_id": "src-1", "name": "Nightly", "connection_id": " conn-1 ",'
            ' "template": ' + template.model_dump_json() + "}"
        )
        assert source.connection_id == "conn-1"
        assert source.platform_type == "keap"
        assert source.is_runnable

    def test_endpoint_precedence(self, template):
        source = Source(source_id="s", name="n", connection_id="c", template=template)
        assert source.effective_endpoints() == ["contacts", "orders"]

        override = source.model_copy(update={"settings": SourceSettings(enabled_endpoints=["products"])})
        assert override.effective_endpoints() == ["products"]

    def test_no_selection_means_catalog_defaults(self):
        template = PlatformSource(platform_source_id="t", platform_type="stripe", name="Stripe")
        source = Source(source_id="s", name="n", connection_id="c", template=template)
        assert source.effective_endpoints() is None

    def test_settings_layering(self, template):
        source = Source(
            source_id="s",
            name="n",
            connection_id="c",
            template=template,
            settings=SourceSettings(custom_params={"b": "override"}),
        )
        assert source.effective_custom_params() == {"a": "1", "b": "override"}
        assert source.effective_incremental() is False

    def test_runnable_states(self, template):
        source = Source(source_id="s", name="n", connection_id="c", template=template)
        assert not source.model_copy(update={"status": SourceStatus.PAUSED}).is_runnable
        assert not source.model_copy(update={"settings": SourceSettings(enabled=False)}).is_runnable

        deleted = source.soft_delete()
        assert deleted.is_deleted
        assert not deleted.is_runnable
        assert not source.is_deleted

    def test_validation(self, template):
        with pytest.raises(ValidationError):
            Source(source_id="", name="n", connection_id="c", template=template)
        with pytest.raises(ValidationError):
            SourceSettings(max_retries=-1)


class TestPlatformConnection:
    def test_active_without_expiry_is_usable(self):
        assert PlatformConnection(connection_id="c", platform_type="keap").is_usable()

    @pytest.mark.parametrize("status", [ConnectionStatus.EXPIRED, ConnectionStatus.REVOKED])
    def test_inactive_is_unusable(self, status):
        assert not PlatformConnection(connection_id="c", platform_type="keap", status=status).is_usable()

    def test_expiry(self):
        now = datetime(2026, 6, 1, tzinfo=UTC)
        connection = PlatformConnection(connection_id="c", platform_type="keap", expires_at=now + timedelta(hours=1))
        assert connection.is_usable(now=now)
        assert not connection.is_usable(now=now + timedelta(hours=2))

    def test_naive_expiry_treated_as_utc(self):
        now = datetime(2026, 6, 1, tzinfo=UTC)
        connection = PlatformConnection(connection_id="c", platform_type="keap", expires_at=datetime(2026, 5, 1))
        assert not connection.is_usable(now=now)
