"""
Credential alias resolution and auth injection.

Connections created by different onboarding flows stored the same secret
under different field names (``auth_token``, ``apiToken``,
``access_token``, ...). Each connector lists the names it accepts in
priority order and :func:`resolve_credential` returns the first one present,
or fails with a :class:`MissingCredentialError` listing all of them. There
is never a built-in fallback credential.

The resolved :class:`AuthConfig` is frozen and becomes part of the
connector's HTTP client at construction, so every request carries the same
auth and nothing can change it mid-fetch.

Examples:
    >>> field, token = resolve_credential({"apiToken": "abc"}, ("auth_token", "apiToken"))
    >>> field, token
    ('apiToken', 'abc')
    >>> AuthConfig.api_key_auth(token).headers()
    {'Authorization': 'Bearer abc'}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from saasbackup.catalog.models import AuthType
from saasbackup.core.errors import AuthenticationError, MissingCredentialError


class AuthStyle(str, Enum):
    """Where an API key travels."""

    BEARER = "bearer"   # Authorization: Bearer <key>
    HEADER = "header"   # <header_name>: <key>


@dataclass(frozen=True)
class AuthConfig:
    """Resolved credential shape for one connector instance.

    Secret fields are excluded from ``repr`` so configs can be logged.
    """

    type: AuthType
    style: AuthStyle = AuthStyle.BEARER
    api_key: str | None = field(default=None, repr=False)
    header_name: str = "X-API-Key"
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    token: str | None = field(default=None, repr=False)
    source_field: str | None = None

    @classmethod
    def api_key_auth(
        cls,
        api_key: str,
        *,
        style: AuthStyle = AuthStyle.BEARER,
        header_name: str = "X-API-Key",
        source_field: str | None = None,
    ) -> AuthConfig:
        return cls(type=AuthType.API_KEY, style=style, api_key=api_key, header_name=header_name, source_field=source_field)

    @classmethod
    def basic_auth(cls, username: str, password: str) -> AuthConfig:
        return cls(type=AuthType.BASIC, username=username, password=password, source_field="username")

    @classmethod
    def oauth(cls, token: str, *, source_field: str | None = None) -> AuthConfig:
        return cls(type=AuthType.OAUTH, token=token, source_field=source_field)

    def headers(self) -> dict[str, str]:
        """Auth headers for every request. Basic auth is handled by :meth:`httpx_auth`."""
        if self.type is AuthType.API_KEY:
            if self.style is AuthStyle.BEARER:
                return {"Authorization": f"Bearer {self.api_key}"}
            return {self.header_name: str(self.api_key)}
        if self.type is AuthType.OAUTH:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def httpx_auth(self) -> httpx.Auth | None:
        if self.type is AuthType.BASIC:
            return httpx.BasicAuth(self.username or "", self.password or "")
        return None


def resolve_credential(
    credentials: Mapping[str, Any],
    aliases: Sequence[str],
    *,
    platform: str | None = None,
) -> tuple[str, str]:
    """Return ``(field_name, value)`` for the first non-empty alias.

    Raises:
        MissingCredentialError: none of *aliases* holds a non-empty string.
            The message names every accepted alias.
    """
    for alias in aliases:
        value = credentials.get(alias)
        if isinstance(value, str) and value.strip():
            return alias, value.strip()
    where = f" for {platform}" if platform else ""
    raise MissingCredentialError(
        f"No credential found{where}; expected one of: {', '.join(aliases)}",
        aliases=tuple(aliases),
    ).with_context(platform=platform)


def parse_expiry(value: Any) -> datetime | None:
    """Parse an ``expires_at`` credential field (ISO-8601 or epoch seconds)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def ensure_not_expired(credentials: Mapping[str, Any], *, platform: str | None = None) -> None:
    """Raise :class:`AuthenticationError` if the credential map carries a past ``expires_at``."""
    expires = parse_expiry(credentials.get("expires_at"))
    if expires is not None and expires <= datetime.now(UTC):
        raise AuthenticationError(
            f"Access token expired at {expires.isoformat()}; reconnect the account"
        ).with_context(platform=platform)


__all__ = [
    "AuthStyle",
    "AuthConfig",
    "resolve_credential",
    "parse_expiry",
    "ensure_not_expired",
]
