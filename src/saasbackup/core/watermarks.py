"""
Watermark store for incremental (delta) fetches.

A watermark is the greatest incremental-timestamp value a Source has
persisted for one endpoint. The next run passes it to the platform as a
since-filter so only newer records come back.

Manifesto:
    Watermarks only move forward. Saving a cursor that is not ahead of the
    stored one is a no-op, so a re-run, a replayed job or an out-of-order
    save never causes the next run to skip data it has not seen.

Features:
    - **In-memory backend:** default, used by tests and one-shot CLI runs
    - **DB backend:** any DB-API connection (sqlite3) via ``conn=``
    - **Numeric-aware ordering:** epoch cursors ("999" < "1000") compare as
      numbers, ISO-8601 timestamps compare as strings

Examples:
    >>> store = WatermarkStore()
    >>> store.save_watermark("src-1", "contacts", "2026-01-01T00:00:00Z")
    >>> store.save_watermark("src-1", "contacts", "2025-12-31T00:00:00Z")
    >>> store.load_watermark("src-1", "contacts")
    '2026-01-01T00:00:00Z'

Tags:
    watermark, incremental, cursor, saasbackup
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from saasbackup.core.logging import get_logger

logger = get_logger(__name__)

WATERMARK_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS backup_watermarks (
    source_id     TEXT NOT NULL,
    endpoint      TEXT NOT NULL,
    cursor        TEXT NOT NULL,
    metadata_json TEXT,
    updated_at    TEXT,
    PRIMARY KEY (source_id, endpoint)
)
"""


@dataclass(frozen=True, slots=True)
class Watermark:
    """High-water mark for one (source, endpoint) pair.

    Attributes:
        source_id: Source the cursor belongs to.
        endpoint: Endpoint name within the Source's platform.
        cursor: Opaque string, typically an ISO-8601 timestamp or epoch.
        metadata: Free-form JSON-serialisable extras (e.g. job_id).
        updated_at: When this watermark last advanced.
    """

    source_id: str
    endpoint: str
    cursor: str
    metadata: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None


def cursor_is_ahead(candidate: str, current: str) -> bool:
    """True when *candidate* is strictly past *current*."""
    try:
        return float(candidate) > float(current)
    except ValueError:
        return candidate > current


class WatermarkStore:
    """Persistence-agnostic watermark store.

    If *conn* is supplied (any object exposing ``.execute()`` and
    ``.commit()``), watermarks are persisted to the ``backup_watermarks``
    table, created on first use. Otherwise an in-memory dict is used.

    Args:
        conn: Optional database connection.
    """

    def __init__(self, conn: Any | None = None) -> None:
        self._conn = conn
        self._mem: dict[tuple[str, str], Watermark] = {}
        if conn is not None:
            conn.execute(WATERMARK_TABLE_DDL)
            conn.commit()

    # -- collaborator interface ----------------------------------------------

    def load_watermark(self, source_id: str, endpoint: str) -> str | None:
        wm = self.get(source_id, endpoint)
        return wm.cursor if wm is not None else None

    def save_watermark(self, source_id: str, endpoint: str, cursor: str) -> None:
        self.advance(source_id, endpoint, cursor)

    # -- core operations -----------------------------------------------------

    def advance(
        self,
        source_id: str,
        endpoint: str,
        cursor: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> Watermark:
        """Move the watermark forward (forward-only).

        Returns:
            The resulting :class:`Watermark` (new, or the unchanged existing
            one when *cursor* is not ahead of it).
        """
        key = (source_id, endpoint)
        existing = self._get_from_store(key)
        if existing is not None and not cursor_is_ahead(cursor, existing.cursor):
            logger.debug(
                "watermark.not_advanced",
                source_id=source_id,
                endpoint=endpoint,
                current=existing.cursor,
                candidate=cursor,
            )
            return existing

        wm = Watermark(
            source_id=source_id,
            endpoint=endpoint,
            cursor=cursor,
            metadata={**(existing.metadata if existing else {}), **(metadata or {})},
            updated_at=datetime.now(UTC),
        )
        self._put_to_store(key, wm)
        logger.debug("watermark.advanced", source_id=source_id, endpoint=endpoint, cursor=cursor)
        return wm

    def get(self, source_id: str, endpoint: str) -> Watermark | None:
        """Retrieve the current watermark, or ``None`` if not tracked."""
        return self._get_from_store((source_id, endpoint))

    def list_all(self, source_id: str | None = None) -> list[Watermark]:
        """Return all tracked watermarks, optionally for one source."""
        if self._conn is not None:
            return self._list_db(source_id)
        marks = list(self._mem.values())
        if source_id is not None:
            marks = [w for w in marks if w.source_id == source_id]
        return marks

    def delete(self, source_id: str, endpoint: str) -> bool:
        """Remove a watermark, forcing a full fetch next run. True if it existed."""
        key = (source_id, endpoint)
        if self._conn is not None:
            return self._delete_db(key)
        return self._mem.pop(key, None) is not None

    # -- internal: memory backend -------------------------------------------

    def _get_from_store(self, key: tuple[str, str]) -> Watermark | None:
        if self._conn is not None:
            return self._get_db(key)
        return self._mem.get(key)

    def _put_to_store(self, key: tuple[str, str], wm: Watermark) -> None:
        if self._conn is not None:
            self._upsert_db(wm)
        else:
            self._mem[key] = wm

    # -- internal: database backend ------------------------------------------

    def _get_db(self, key: tuple[str, str]) -> Watermark | None:
        source_id, endpoint = key
        row = self._conn.execute(
            "SELECT cursor, metadata_json, updated_at FROM backup_watermarks "
            "WHERE source_id = ? AND endpoint = ?",
            (source_id, endpoint),
        ).fetchone()
        if row is None:
            return None
        return Watermark(
            source_id=source_id,
            endpoint=endpoint,
            cursor=row[0],
            metadata=json.loads(row[1]) if row[1] else {},
            updated_at=datetime.fromisoformat(row[2]) if row[2] else None,
        )

    def _upsert_db(self, wm: Watermark) -> None:
        self._conn.execute(
            "INSERT INTO backup_watermarks (source_id, endpoint, cursor, metadata_json, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(source_id, endpoint) DO UPDATE SET "
            "  cursor = excluded.cursor, "
            "  metadata_json = excluded.metadata_json, "
            "  updated_at = excluded.updated_at",
            (
                wm.source_id,
                wm.endpoint,
                wm.cursor,
                json.dumps(wm.metadata) if wm.metadata else None,
                wm.updated_at.isoformat() if wm.updated_at else None,
            ),
        )
        self._conn.commit()

    def _list_db(self, source_id: str | None) -> list[Watermark]:
        sql = "SELECT source_id, endpoint, cursor, metadata_json, updated_at FROM backup_watermarks"
        params: tuple[Any, ...] = ()
        if source_id is not None:
            sql += " WHERE source_id = ?"
            params = (source_id,)
        rows = self._conn.execute(sql, params).fetchall()
        return [
            Watermark(
                source_id=r[0],
                endpoint=r[1],
                cursor=r[2],
                metadata=json.loads(r[3]) if r[3] else {},
                updated_at=datetime.fromisoformat(r[4]) if r[4] else None,
            )
            for r in rows
        ]

    def _delete_db(self, key: tuple[str, str]) -> bool:
        cur = self._conn.execute(
            "DELETE FROM backup_watermarks WHERE source_id = ? AND endpoint = ?",
            key,
        )
        self._conn.commit()
        return cur.rowcount > 0


__all__ = ["Watermark", "WatermarkStore", "cursor_is_ahead", "WATERMARK_TABLE_DDL"]
