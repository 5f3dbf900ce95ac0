"""
User-owned records: connections, source templates and sources.

Unlike the catalog (static, code-defined), these arrive from users and
operators as JSON, so they are pydantic models and get validated on load.

    PlatformConnection ──┐
                         ├── Source ──► Job (one per trigger)
    PlatformSource ──────┘   (settings override template defaults)

Examples:
    >>> template = PlatformSource(platform_source_id="keap-crm", platform_type="keap",
    ...                           name="Keap CRM", endpoints=["contacts", "orders"])
    >>> source = Source(source_id="src-1", name="Nightly Keap", connection_id="conn-1",
    ...                 template=template)
    >>> source.effective_endpoints()
    ['contacts', 'orders']

Tags:
    source, connection, template, pydantic, saasbackup
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saasbackup.catalog.models import AuthType


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class PlatformConnection(BaseModel):
    """One user's authenticated credential set for a platform.

    Secrets are not stored here; ``connection_id`` is the key the
    credential resolver looks them up by.
    """

    connection_id: str = Field(min_length=1)
    platform_type: str = Field(min_length=1)
    name: str = ""
    auth_type: AuthType = AuthType.API_KEY
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    expires_at: datetime | None = Field(default=None, description="OAuth token expiry, if any")
    created_at: datetime = Field(default_factory=_utcnow)

    def is_usable(self, now: datetime | None = None) -> bool:
        """Active and not past its token expiry."""
        if self.status is not ConnectionStatus.ACTIVE:
            return False
        if self.expires_at is None:
            return True
        expires = self.expires_at if self.expires_at.tzinfo else self.expires_at.replace(tzinfo=UTC)
        return expires > (now or _utcnow())


class SourceSettings(BaseModel):
    """User-overridable settings; ``None`` means "use the template's value"."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    enabled_endpoints: list[str] | None = None
    priority: str = "medium"
    frequency: str = "daily"
    schedule: str | None = None
    retention_days: int | None = Field(default=None, ge=1)
    incremental_sync: bool | None = None
    custom_params: dict[str, str] = Field(default_factory=dict)
    max_retries: int | None = Field(default=None, ge=0)
    timeout_seconds: float | None = Field(default=None, gt=0)


class PlatformSource(BaseModel):
    """Template bundling default endpoints and settings for a platform."""

    platform_source_id: str = Field(min_length=1)
    platform_type: str = Field(min_length=1)
    name: str
    description: str = ""
    endpoints: list[str] = Field(default_factory=list)
    default_settings: SourceSettings = Field(default_factory=SourceSettings)


class Source(BaseModel):
    """A user's configured backup job: one connection, one template."""

    source_id: str = Field(min_length=1)
    name: str
    connection_id: str = Field(min_length=1)
    template: PlatformSource
    settings: SourceSettings = Field(default_factory=SourceSettings)
    status: SourceStatus = SourceStatus.ACTIVE
    deleted_at: datetime | None = None
    last_sync_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("connection_id")
    @classmethod
    def _strip_connection_id(cls, v: str) -> str:
        return v.strip()

    @property
    def platform_type(self) -> str:
        return self.template.platform_type

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_runnable(self) -> bool:
        return not self.is_deleted and self.status is SourceStatus.ACTIVE and self.settings.enabled

    def effective_endpoints(self) -> list[str] | None:
        """Endpoints to back up: source override, else template defaults.

        ``None`` means neither chose, so the catalog's default-enabled
        endpoints apply.
        """
        if self.settings.enabled_endpoints is not None:
            return list(self.settings.enabled_endpoints)
        if self.template.default_settings.enabled_endpoints is not None:
            return list(self.template.default_settings.enabled_endpoints)
        if self.template.endpoints:
            return list(self.template.endpoints)
        return None

    def effective_incremental(self) -> bool:
        for value in (self.settings.incremental_sync, self.template.default_settings.incremental_sync):
            if value is not None:
                return value
        return True

    def effective_custom_params(self) -> dict[str, str]:
        return {**self.template.default_settings.custom_params, **self.settings.custom_params}

    def soft_delete(self) -> Source:
        return self.model_copy(update={"deleted_at": _utcnow()})


__all__ = [
    "ConnectionStatus",
    "SourceStatus",
    "PlatformConnection",
    "SourceSettings",
    "PlatformSource",
    "Source",
]
