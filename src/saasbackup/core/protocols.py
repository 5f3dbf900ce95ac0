"""
Collaborator protocols consumed by the engine.

The engine owns fetching and orchestration; credential storage, watermark
persistence and record storage belong to the host application. These
protocols are the whole surface between the two, so any object of the
right shape plugs in without inheriting from anything here.

Architecture:
    ::

        protocols.py
        ├── CredentialResolver : connection_id -> raw secret map
        ├── WatermarkStoreProtocol : (source_id, endpoint) -> cursor
        ├── RecordSink : persist one endpoint's records for a job
        └── Connection : sync DB connection (sqlite3 and friends)

    Implementations:
        core/credentials.py   InMemoryCredentialResolver, JsonFileCredentialResolver
        core/watermarks.py    WatermarkStore (memory or DB connection)
        core/sinks.py         InMemoryRecordSink, JsonlRecordSink

Guardrails:
    ❌ DON'T: Resolve credential aliases in a CredentialResolver
    ✅ DO: Return the raw map; alias resolution belongs to the connector

    ❌ DON'T: Buffer a whole job's records before persisting
    ✅ DO: Commit per endpoint, so partial jobs keep completed data

Tags:
    protocol, collaborators, credentials, watermarks, sink, saasbackup
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous DB-API connection (sqlite3, psycopg2, ...)."""

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> Any: ...

    def commit(self) -> None: ...


@runtime_checkable
class CredentialResolver(Protocol):
    """Look up the raw secret fields of a platform connection."""

    def get_credentials(self, connection_id: str) -> dict[str, Any]: ...


@runtime_checkable
class WatermarkStoreProtocol(Protocol):
    """Persist the last-seen cursor per (source, endpoint)."""

    def load_watermark(self, source_id: str, endpoint: str) -> str | None: ...

    def save_watermark(self, source_id: str, endpoint: str, cursor: str) -> None: ...


@runtime_checkable
class RecordSink(Protocol):
    """Persist records fetched for one endpoint of one job."""

    def persist_records(self, job_id: str, endpoint: str, records: Sequence[dict[str, Any]]) -> None: ...


__all__ = [
    "Connection",
    "CredentialResolver",
    "WatermarkStoreProtocol",
    "RecordSink",
]
