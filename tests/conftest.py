"""
Shared pytest fixtures for saasbackup tests.

This module provides:
- Settings with zero retry delay so failure tests run instantly
- In-memory collaborators (credentials, watermarks, sink)
- ``build_orchestrator``: a JobOrchestrator wired to the fake API

Usage:
    def test_something(fake_api, build_orchestrator):
        fake_api.route("/v1/contacts", offset_pages(make_records(250)))
        orchestrator = build_orchestrator(make_platform(make_endpoint("contacts")))
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from _support import FakeAPI, connector_class, respond
from saasbackup.catalog.models import Platform
from saasbackup.connectors.registry import ConnectorRegistry
from saasbackup.core.credentials import InMemoryCredentialResolver
from saasbackup.core.settings import EngineSettings, get_settings
from saasbackup.core.sinks import InMemoryRecordSink
from saasbackup.core.watermarks import WatermarkStore
from saasbackup.orchestration.orchestrator import JobOrchestrator

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> EngineSettings:
    """Settings with instant retries and a small pagination bound."""
    return EngineSettings(
        _env_file=None,
        retry_base_delay=0.0,
        retry_jitter=False,
        max_retries=3,
        max_pages=50,
        http_timeout_seconds=5.0,
    )


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep process-wide settings away from the developer's environment."""
    monkeypatch.setenv("SAASBACKUP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SAASBACKUP_RETRY_BASE_DELAY", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_api() -> FakeAPI:
    api = FakeAPI()
    api.route("/v1/me", respond(200, {"id": "acct_1"}))
    return api


@pytest.fixture
def sink() -> InMemoryRecordSink:
    return InMemoryRecordSink()


@pytest.fixture
def watermarks() -> WatermarkStore:
    return WatermarkStore()


@pytest.fixture
def credentials() -> InMemoryCredentialResolver:
    return InMemoryCredentialResolver({"conn-1": {"api_key": "secret-key"}})


@pytest.fixture
def build_orchestrator(
    fake_api: FakeAPI,
    credentials: InMemoryCredentialResolver,
    watermarks: WatermarkStore,
    sink: InMemoryRecordSink,
    settings: EngineSettings,
) -> Callable[..., JobOrchestrator]:
    """Factory: orchestrator wired to *platform*, the fake API and in-memory collaborators."""

    def build(platform: Platform, **options: Any) -> JobOrchestrator:
        registry = ConnectorRegistry()
        registry.register(platform, connector_class(platform))
        return JobOrchestrator(
            credentials=credentials,
            watermarks=watermarks,
            sink=sink,
            registry=registry,
            settings=options.pop("settings", settings),
            connector_options={"transport": fake_api.transport, "rate_limit_delay": 0.0, **options},
        )

    return build
