"""Tests for environment-driven engine settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from saasbackup.core.settings import EngineSettings, get_settings


class TestEngineSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SAASBACKUP_RETRY_BASE_DELAY", raising=False)
        settings = EngineSettings(_env_file=None)
        assert settings.http_timeout_seconds == 30.0
        assert settings.default_page_size == 100
        assert settings.max_retries == 3
        assert settings.retry_base_delay == 1.0

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SAASBACKUP_MAX_RETRIES", "7")
        monkeypatch.setenv("SAASBACKUP_HTTP_TIMEOUT_SECONDS", "12.5")
        settings = EngineSettings(_env_file=None)
        assert settings.max_retries == 7
        assert settings.http_timeout_seconds == 12.5

    def test_data_dir_from_environment(self, tmp_path):
        assert get_settings().data_dir == tmp_path / "data"

    @pytest.mark.parametrize("field", ["http_timeout_seconds", "max_pages", "default_page_size"])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            EngineSettings(_env_file=None, **{field: 0})

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
