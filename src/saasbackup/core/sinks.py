"""Record sinks: where fetched records are committed.

Each ``persist_records`` call is one commit for one endpoint of one job.
There is no job-wide transaction: when a job ends partially completed,
the endpoints that succeeded keep their data.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from saasbackup.core.errors import StorageError
from saasbackup.core.logging import get_logger

logger = get_logger(__name__)


class InMemoryRecordSink:
    """Keeps records in memory, keyed by ``(job_id, endpoint)``.

    ``commits`` records the order endpoints were persisted in, which makes it
    the natural probe for execution-order assertions in tests.
    """

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.commits: list[tuple[str, str, int]] = []
        self._lock = threading.Lock()

    def persist_records(self, job_id: str, endpoint: str, records: Sequence[dict[str, Any]]) -> None:
        with self._lock:
            self.records.setdefault((job_id, endpoint), []).extend(records)
            self.commits.append((job_id, endpoint, len(records)))

    def get(self, job_id: str, endpoint: str) -> list[dict[str, Any]]:
        return list(self.records.get((job_id, endpoint), []))

    def endpoints_for(self, job_id: str) -> list[str]:
        """Endpoints committed for *job_id*, in commit order."""
        return [ep for jid, ep, _ in self.commits if jid == job_id]


class JsonlRecordSink:
    """Writes ``<root>/<job_id>/<endpoint>.jsonl``, one JSON record per line.

    Records are written to a temporary file and renamed into place, so a
    crash mid-endpoint never leaves a truncated export behind.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, job_id: str, endpoint: str) -> Path:
        return self.root / job_id / f"{endpoint}.jsonl"

    def persist_records(self, job_id: str, endpoint: str, records: Sequence[dict[str, Any]]) -> None:
        target = self.path_for(job_id, endpoint)
        tmp = target.with_suffix(".jsonl.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                for record in records:
                    fh.write(json.dumps(record, default=str, separators=(",", ":")))
                    fh.write("\n")
            tmp.replace(target)
        except OSError as e:
            raise StorageError(f"Failed to write {target}", cause=e).with_context(
                job_id=job_id, endpoint=endpoint
            ) from e
        logger.debug("sink.persisted", path=str(target), records=len(records))


__all__ = ["InMemoryRecordSink", "JsonlRecordSink"]
