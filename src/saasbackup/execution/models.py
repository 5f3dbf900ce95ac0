"""
Job state machine and progress model.

A :class:`Job` is one execution run of a Source. Its status moves through a
strict transition table; its :class:`JobProgress` counters are updated after
every endpoint and its percent-complete value never moves backwards.

State graph::

    PENDING ──► RUNNING ──► COMPLETED
       │           ├──────► PARTIALLY_COMPLETED
       │           ├──────► FAILED
       │           └──────► CANCELLED
       └──────────────────► CANCELLED   (cancelled before it started)

    Terminal states accept no further transitions and freeze the job.

Per-endpoint status::

    PENDING ──► RUNNING ──► SUCCEEDED | FAILED
       └──────────────────► SKIPPED   (a dependency did not succeed,
                                       the job was cancelled, or a
                                       systemic error stopped the run)
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


class InvalidTransitionError(ValueError):
    """Raised when an illegal state transition is attempted.

    If you discover a legitimate transition that is blocked, add it to
    ``JOB_VALID_TRANSITIONS`` explicitly; never remove the guard.
    """

    def __init__(self, current: str, target: str, enum_name: str = "Status") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}")


class JobStatus(str, Enum):
    """Status of a backup job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not JOB_VALID_TRANSITIONS[self]


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({
        JobStatus.RUNNING,
        JobStatus.CANCELLED,
    }),
    JobStatus.RUNNING: frozenset({
        JobStatus.COMPLETED,
        JobStatus.PARTIALLY_COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }),
    JobStatus.COMPLETED: frozenset(),  # terminal
    JobStatus.PARTIALLY_COMPLETED: frozenset(),  # terminal
    JobStatus.FAILED: frozenset(),  # terminal
    JobStatus.CANCELLED: frozenset(),  # terminal
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_job_transition(JobStatus.RUNNING, JobStatus.COMPLETED)
        >>> validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)
        Traceback (most recent call last):
        InvalidTransitionError: Invalid JobStatus transition: completed → running
    """
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, "JobStatus")


class EndpointStatus(str, Enum):
    """Outcome of one endpoint within a job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (EndpointStatus.SUCCEEDED, EndpointStatus.FAILED, EndpointStatus.SKIPPED)


# =============================================================================
# Config and progress
# =============================================================================


@dataclass(frozen=True)
class JobConfig:
    """What a job processes and the limits it runs under.

    Attributes:
        endpoints: Endpoint names in execution (dependency) order.
        max_retries: Retries per endpoint for transient errors.
        timeout_seconds: Per-HTTP-call timeout for the job's connector.
        retention_days: Retention hint passed through to storage.
        incremental_sync: Use watermarks for endpoints that support it.
        custom_params: Extra query parameters sent with every fetch.
        metadata: Free-form caller metadata.
    """

    endpoints: tuple[str, ...] = ()
    max_retries: int = 3
    timeout_seconds: float = 30.0
    retention_days: int | None = None
    incremental_sync: bool = True
    custom_params: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.endpoints, list):
            object.__setattr__(self, "endpoints", tuple(self.endpoints))
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    def __hash__(self) -> int:
        return hash((self.endpoints, self.max_retries, self.timeout_seconds))


@dataclass
class JobProgress:
    """Counters for a running job.

    ``percent_complete`` is ``completed_steps / total_steps * 100`` and only
    ever increases within a run, whatever happens to later endpoints.
    """

    total_steps: int = 0
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    percent_complete: float = 0.0
    current_step: str | None = None
    records_processed: int = 0
    data_size_bytes: int = 0
    error_message: str | None = None

    @property
    def finished_steps(self) -> int:
        return self.completed_steps + self.failed_steps + self.skipped_steps

    def refresh_percent(self) -> None:
        """Recompute ``percent_complete``; a job with no steps is 100% done."""
        if self.total_steps <= 0:
            candidate = 100.0
        else:
            candidate = round(self.completed_steps / self.total_steps * 100.0, 2)
        self.percent_complete = max(self.percent_complete, candidate)

    def start_step(self, endpoint: str) -> None:
        self.current_step = endpoint

    def record_success(self, endpoint: str, records: int, size_bytes: int) -> None:
        self.completed_steps += 1
        self.records_processed += records
        self.data_size_bytes += size_bytes
        self.current_step = None
        self.refresh_percent()

    def record_failure(self, endpoint: str, message: str) -> None:
        self.failed_steps += 1
        self.current_step = None
        self.error_message = f"{endpoint}: {message}"

    def record_skip(self, endpoint: str) -> None:
        self.skipped_steps += 1
        if self.current_step == endpoint:
            self.current_step = None

    def snapshot(self) -> JobProgress:
        """Independent copy, safe to hand to pollers on other threads."""
        return copy.copy(self)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Results
# =============================================================================


@dataclass
class EndpointResult:
    """Outcome of one endpoint: counts on success, the error otherwise."""

    name: str
    status: EndpointStatus = EndpointStatus.PENDING
    records: int = 0
    size_bytes: int = 0
    attempts: int = 0
    since: str | None = None
    watermark: str | None = None
    error: str | None = None
    error_type: str | None = None
    skip_reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "records": self.records,
            "size_bytes": self.size_bytes,
            "attempts": self.attempts,
        }
        for key in ("since", "watermark", "error", "error_type", "skip_reason"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.started_at:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at:
            result["completed_at"] = self.completed_at.isoformat()
        return result


@dataclass
class Job:
    """One execution run of a Source. Immutable once terminal."""

    job_id: str
    source_id: str
    platform_type: str
    config: JobConfig = field(default_factory=JobConfig)
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = field(default_factory=JobProgress)
    endpoint_results: dict[str, EndpointResult] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition_to(self, target: JobStatus) -> None:
        validate_job_transition(self.status, target)
        self.status = target
        if target is JobStatus.RUNNING:
            self.started_at = utcnow()
        elif target.is_terminal:
            self.completed_at = utcnow()


@dataclass
class JobResult:
    """Terminal summary returned by ``run_job``."""

    job_id: str
    source_id: str
    platform_type: str
    status: JobStatus
    progress: JobProgress
    endpoint_results: dict[str, EndpointResult]
    execution_order: list[str]
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_job(cls, job: Job, execution_order: list[str]) -> JobResult:
        return cls(
            job_id=job.job_id,
            source_id=job.source_id,
            platform_type=job.platform_type,
            status=job.status,
            progress=job.progress.snapshot(),
            endpoint_results={name: copy.copy(r) for name, r in job.endpoint_results.items()},
            execution_order=list(execution_order),
            started_at=job.started_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
        )

    @property
    def succeeded(self) -> list[str]:
        return [n for n, r in self.endpoint_results.items() if r.status is EndpointStatus.SUCCEEDED]

    @property
    def failed(self) -> list[str]:
        return [n for n, r in self.endpoint_results.items() if r.status is EndpointStatus.FAILED]

    @property
    def skipped(self) -> list[str]:
        return [n for n, r in self.endpoint_results.items() if r.status is EndpointStatus.SKIPPED]

    def error_summary(self) -> dict[str, str]:
        """Per-endpoint failure and skip reasons."""
        summary: dict[str, str] = {}
        for name, result in self.endpoint_results.items():
            if result.status is EndpointStatus.FAILED:
                summary[name] = f"{result.error_type}: {result.error}"
            elif result.status is EndpointStatus.SKIPPED:
                summary[name] = f"skipped: {result.skip_reason}"
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "source_id": self.source_id,
            "platform_type": self.platform_type,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "execution_order": list(self.execution_order),
            "endpoints": {n: r.to_dict() for n, r in self.endpoint_results.items()},
            "errors": self.error_summary(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


__all__ = [
    "utcnow",
    "InvalidTransitionError",
    "JobStatus",
    "JOB_VALID_TRANSITIONS",
    "validate_job_transition",
    "EndpointStatus",
    "JobConfig",
    "JobProgress",
    "EndpointResult",
    "Job",
    "JobResult",
]
