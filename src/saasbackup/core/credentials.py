"""Credential resolvers: connection id -> raw secret map.

Resolvers return the credential map exactly as stored. Picking the right
field out of it (``auth_token`` vs ``apiToken`` vs ``access_token``) is the
connector's job, see :func:`saasbackup.connectors.auth.resolve_credential`.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from saasbackup.core.errors import ConfigurationError, MissingCredentialError


class InMemoryCredentialResolver:
    """Dictionary-backed resolver for tests and embedding.

    NOT for production secrets: values live in plain process memory.
    """

    def __init__(self, connections: dict[str, dict[str, Any]] | None = None):
        self._connections = {k: dict(v) for k, v in (connections or {}).items()}

    def get_credentials(self, connection_id: str) -> dict[str, Any]:
        try:
            return dict(self._connections[connection_id])
        except KeyError:
            raise MissingCredentialError(
                f"No credentials stored for connection '{connection_id}'"
            ) from None

    def set(self, connection_id: str, credentials: dict[str, Any]) -> None:
        """Store or replace a connection's credentials."""
        self._connections[connection_id] = dict(credentials)

    def revoke(self, connection_id: str) -> bool:
        """Forget a connection. Returns True if it existed."""
        return self._connections.pop(connection_id, None) is not None


class JsonFileCredentialResolver:
    """Resolve credentials from a JSON file.

    The file maps connection ids to credential objects::

        {"conn-keap": {"access_token": "..."}, "conn-stripe": {"api_key": "sk_live_..."}}

    A file holding a single flat credential object is also accepted; it then
    answers for every connection id. The file is read once and cached.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._cache: dict[str, Any] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        with self._lock:
            if self._cache is None:
                try:
                    data = json.loads(self.path.read_text(encoding="utf-8"))
                except OSError as e:
                    raise ConfigurationError(f"Cannot read credentials file {self.path}", cause=e) from e
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Credentials file {self.path} is not valid JSON", cause=e) from e
                if not isinstance(data, dict):
                    raise ConfigurationError(f"Credentials file {self.path} must contain a JSON object")
                self._cache = data
            return self._cache

    def get_credentials(self, connection_id: str) -> dict[str, Any]:
        data = self._load()
        entry = data.get(connection_id)
        if isinstance(entry, dict):
            return dict(entry)
        if data and not any(isinstance(v, dict) for v in data.values()):
            return dict(data)
        raise MissingCredentialError(f"No credentials for connection '{connection_id}' in {self.path}")


__all__ = ["InMemoryCredentialResolver", "JsonFileCredentialResolver"]
