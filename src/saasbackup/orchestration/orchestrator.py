"""
Job orchestrator: runs one Source to a terminal Job status.

Manifesto:
    A backup that saved nine of ten endpoints is still a useful backup.
    Endpoint failures are recorded and the run moves on; only failures that
    would hit every endpoint identically (credentials, configuration) stop
    the job. Whatever was committed before a failure or a cancellation stays
    committed.

Architecture:
    ::

        run_job(source)
          create_job()            plan_endpoints() → JobConfig, EndpointResults
          PENDING → RUNNING
          check source/connection ConfigurationError ──────────────► FAILED
          credentials → registry.create(platform, creds)
          connector.test()        (transient retry) AuthenticationError ► FAILED
          for endpoint in plan:
              cancel requested?   → skip rest ─────────────────────► CANCELLED
              dependency not ok?  → SKIPPED
              since = watermark   (incremental endpoints)
              fetch               (RetryContext: transient only)
              renames → sink.persist_records → save watermark
              progress.record_success / record_failure
              systemic error?     → skip rest ─────────────────────► FAILED
          all ok → COMPLETED | some ok → PARTIALLY_COMPLETED | none → FAILED

Examples:
    >>> orchestrator = JobOrchestrator(
    ...     credentials=InMemoryCredentialResolver({"conn-1": {"api_key": "sk_test_x"}}),
    ...     watermarks=WatermarkStore(),
    ...     sink=InMemoryRecordSink(),
    ... )
    >>> result = orchestrator.run_job(source)
    >>> result.status
    <JobStatus.COMPLETED: 'completed'>

Guardrails:
    ❌ DON'T: Cancel mid-page or mid-endpoint
    ✅ DO: Check the cancel flag between endpoints only

    ❌ DON'T: Advance a watermark before the records are persisted
    ✅ DO: persist_records() first, then save_watermark()

Tags:
    orchestrator, job, state-machine, retry, cancellation, saasbackup
"""

from __future__ import annotations

import json
import threading
import uuid
from collections.abc import Mapping, Sequence
from contextlib import closing
from typing import Any

from saasbackup.catalog.models import PlatformEndpoint
from saasbackup.catalog.registry import EndpointCatalog
from saasbackup.catalog.sources import PlatformConnection, Source
from saasbackup.connectors.base import Connector
from saasbackup.connectors.registry import ConnectorRegistry, default_registry
from saasbackup.core.errors import (
    BackupError,
    CancellationError,
    ConfigurationError,
    categorize_error,
    is_systemic,
)
from saasbackup.core.logging import LogContext, get_logger
from saasbackup.core.protocols import CredentialResolver, RecordSink, WatermarkStoreProtocol
from saasbackup.core.settings import EngineSettings, get_settings
from saasbackup.core.watermarks import cursor_is_ahead
from saasbackup.execution.models import (
    EndpointResult,
    EndpointStatus,
    Job,
    JobConfig,
    JobProgress,
    JobResult,
    JobStatus,
    utcnow,
)
from saasbackup.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy
from saasbackup.orchestration.planner import plan_endpoints

logger = get_logger(__name__)


def new_job_id() -> str:
    return str(uuid.uuid4())


def max_timestamp(records: Sequence[Mapping[str, Any]], field_name: str) -> str | None:
    """Greatest non-empty value of *field_name* across *records*, as a cursor string."""
    best: str | None = None
    for record in records:
        if not isinstance(record, Mapping):
            continue
        value = record.get(field_name)
        if value is None or value == "":
            continue
        candidate = str(value)
        if best is None or cursor_is_ahead(candidate, best):
            best = candidate
    return best


def payload_size(records: Sequence[Any]) -> int:
    """Bytes of the records as compact UTF-8 JSON."""
    return len(json.dumps(records, default=str, separators=(",", ":")).encode("utf-8"))


class JobOrchestrator:
    """
    Runs backup jobs for Sources and tracks their progress.

    One orchestrator may run several jobs concurrently on different threads;
    each job owns its own connector (and therefore its own rate limiter).
    Progress reads go through :meth:`get_job_progress`, which returns a
    snapshot taken under the orchestrator lock.

    Args:
        credentials: Resolves a Source's ``connection_id`` to raw secrets.
        watermarks: Loads and saves per-endpoint incremental cursors.
        sink: Receives each endpoint's records, one commit per endpoint.
        registry: Connector registry (defaults to the shipped platforms).
        catalog: Endpoint catalog (defaults to the registry's catalog).
        settings: Engine settings (defaults to process settings).
        connector_options: Extra keyword arguments for every connector,
            e.g. ``transport`` or ``rate_limit_delay``.
    """

    def __init__(
        self,
        credentials: CredentialResolver,
        watermarks: WatermarkStoreProtocol,
        sink: RecordSink,
        registry: ConnectorRegistry | None = None,
        catalog: EndpointCatalog | None = None,
        settings: EngineSettings | None = None,
        connector_options: Mapping[str, Any] | None = None,
    ):
        self.credentials = credentials
        self.watermarks = watermarks
        self.sink = sink
        self.registry = registry or default_registry()
        self.catalog = catalog or self.registry.catalog
        self.settings = settings or get_settings()
        self.connector_options = dict(connector_options or {})

        self._jobs: dict[str, Job] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Job lifecycle
    # =========================================================================

    def create_job(self, source: Source, job_id: str | None = None) -> Job:
        """Plan *source* and register a pending Job for it.

        Raises:
            ConfigurationError: unknown platform or endpoint names.
        """
        plan = plan_endpoints(self.catalog, source.platform_type, source.effective_endpoints())
        config = self._job_config(source, [e.name for e in plan])
        job = Job(
            job_id=job_id or new_job_id(),
            source_id=source.source_id,
            platform_type=source.platform_type,
            config=config,
            progress=JobProgress(total_steps=len(config.endpoints)),
            endpoint_results={name: EndpointResult(name=name) for name in config.endpoints},
        )
        self._register(job)
        logger.info(
            "job.created",
            job_id=job.job_id,
            source_id=source.source_id,
            platform=source.platform_type,
            endpoints=list(config.endpoints),
        )
        return job

    def run_job(
        self,
        source: Source,
        job_id: str | None = None,
        connection: PlatformConnection | None = None,
    ) -> JobResult:
        """Run *source* to a terminal status and return the result.

        Pass the ``job_id`` of a job from :meth:`create_job` to run it, or
        leave it out to create one. Configuration problems do not raise;
        they produce a ``failed`` result.
        """
        job = self.get_job(job_id) if job_id and job_id in self._jobs else None
        setup_error: Exception | None = None
        if job is None:
            try:
                job = self.create_job(source, job_id=job_id)
            except ConfigurationError as e:
                setup_error = e
                job = self._register(
                    Job(job_id=job_id or new_job_id(), source_id=source.source_id, platform_type=source.platform_type)
                )
        elif job.source_id != source.source_id:
            raise ValueError(f"Job {job.job_id} belongs to source {job.source_id}, not {source.source_id}")

        with LogContext(job_id=job.job_id, source_id=job.source_id, platform=job.platform_type):
            with self._lock:
                cancelled_before_start = job.status is JobStatus.CANCELLED
                if not cancelled_before_start:
                    job.transition_to(JobStatus.RUNNING)
            if cancelled_before_start:
                logger.info("job.cancelled_before_start")
                return self._result(job)
            logger.info("job.started", endpoints=list(job.config.endpoints))

            if setup_error is None:
                try:
                    self._check_runnable(source, connection)
                    credentials = self.credentials.get_credentials(source.connection_id)
                    connector = self.registry.create(
                        source.platform_type,
                        credentials,
                        settings=self.settings,
                        timeout=job.config.timeout_seconds,
                        **self.connector_options,
                    )
                except BackupError as e:
                    setup_error = e
                except Exception as e:
                    logger.exception("job.setup_unexpected_error")
                    setup_error = e

            if setup_error is not None:
                self._fail_job(job, setup_error)
                return self._result(job)

            with closing(connector):
                self._execute(job, source, connector)

        return self._result(job)

    def get_job(self, job_id: str) -> Job:
        """The live Job record. Raises ``KeyError`` for unknown ids."""
        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError:
                raise KeyError(f"Unknown job: {job_id}") from None

    def get_job_progress(self, job_id: str) -> JobProgress:
        """Point-in-time copy of a job's progress, safe to poll from any thread."""
        with self._lock:
            return self.get_job(job_id).progress.snapshot()

    def cancel_job(self, job_id: str) -> bool:
        """Request cancellation. Returns False if the job already finished.

        A pending job is cancelled at once. A running job stops before its
        next endpoint; the endpoint in flight completes normally.
        """
        with self._lock:
            job = self.get_job(job_id)
            if job.is_terminal:
                return False
            self._cancel_events[job_id].set()
            if job.status is JobStatus.PENDING:
                job.error_message = str(CancellationError("Cancelled before start"))
                for name in job.config.endpoints:
                    self._skip(job, name, "job cancelled")
                job.transition_to(JobStatus.CANCELLED)
        logger.info("job.cancel_requested", job_id=job_id)
        return True

    def list_jobs(self, source_id: str | None = None) -> list[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        if source_id is not None:
            jobs = [j for j in jobs if j.source_id == source_id]
        return jobs

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(self, job: Job, source: Source, connector: Connector) -> None:
        try:
            self._retry_context(job).run(connector.test)
        except BackupError as e:
            logger.error("job.connector_test_failed", error_type=type(e).__name__, error=str(e))
            self._fail_job(job, e)
            return
        except Exception as e:
            logger.exception("job.connector_test_unexpected_error")
            self._fail_job(job, e)
            return

        cancel_event = self._cancel_events[job.job_id]
        systemic: BackupError | None = None
        cancelled = False
        names = list(job.config.endpoints)

        for index, name in enumerate(names):
            if cancel_event.is_set():
                cancelled = True
                cancellation = CancellationError(f"Cancelled before endpoint '{name}'")
                job.error_message = str(cancellation)
                for remaining in names[index:]:
                    self._skip(job, remaining, "job cancelled")
                logger.info("job.cancelled", completed=job.progress.completed_steps, next_endpoint=name)
                break

            endpoint = self.catalog.endpoint(job.platform_type, name)
            blocked = [
                dep
                for dep in endpoint.dependencies
                if dep in job.endpoint_results and job.endpoint_results[dep].status is not EndpointStatus.SUCCEEDED
            ]
            if blocked:
                self._skip(job, name, f"dependency did not succeed: {', '.join(blocked)}")
                continue

            try:
                self._run_endpoint(job, source, connector, endpoint)
            except BackupError as e:
                self._record_failure(job, name, e)
                if is_systemic(e):
                    systemic = e
                    for remaining in names[index + 1:]:
                        self._skip(job, remaining, f"job stopped: {type(e).__name__}")
                    break
            except Exception as e:
                logger.exception("endpoint.unexpected_error", endpoint=name)
                self._record_failure(job, name, e)

        self._finish(job, systemic=systemic, cancelled=cancelled)

    def _run_endpoint(self, job: Job, source: Source, connector: Connector, endpoint: PlatformEndpoint) -> None:
        name = endpoint.name
        result = job.endpoint_results[name]
        with self._lock:
            result.status = EndpointStatus.RUNNING
            result.started_at = utcnow()
            job.progress.start_step(name)

        since = None
        if job.config.incremental_sync and endpoint.supports_incremental:
            since = self.watermarks.load_watermark(job.source_id, name)
        result.since = since
        logger.info("endpoint.started", endpoint=name, since=since)

        retry = self._retry_context(job, endpoint=name)
        try:
            records = retry.run(connector.fetch, name, since, job.config.custom_params or None)
        finally:
            result.attempts = retry.attempts

        mapping = endpoint.response_mapping
        watermark = None
        if endpoint.supports_incremental and mapping.timestamp_field:
            watermark = max_timestamp(records, mapping.timestamp_field)
        if mapping.field_mappings:
            records = [mapping.apply(r) for r in records]
        size = payload_size(records)

        self.sink.persist_records(job.job_id, name, records)
        if watermark is not None:
            self.watermarks.save_watermark(job.source_id, name, watermark)

        with self._lock:
            result.status = EndpointStatus.SUCCEEDED
            result.records = len(records)
            result.size_bytes = size
            result.watermark = watermark
            result.completed_at = utcnow()
            job.progress.record_success(name, len(records), size)
        logger.info(
            "endpoint.succeeded",
            endpoint=name,
            records=len(records),
            size_bytes=size,
            attempts=result.attempts,
            percent_complete=job.progress.percent_complete,
        )

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _register(self, job: Job) -> Job:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job id already in use: {job.job_id}")
            self._jobs[job.job_id] = job
            self._cancel_events[job.job_id] = threading.Event()
        return job

    def _job_config(self, source: Source, endpoints: list[str]) -> JobConfig:
        settings, defaults = source.settings, source.template.default_settings
        max_retries = next(
            (v for v in (settings.max_retries, defaults.max_retries) if v is not None),
            self.settings.max_retries,
        )
        timeout = next(
            (v for v in (settings.timeout_seconds, defaults.timeout_seconds) if v is not None),
            self.settings.http_timeout_seconds,
        )
        return JobConfig(
            endpoints=tuple(endpoints),
            max_retries=max_retries,
            timeout_seconds=timeout,
            retention_days=settings.retention_days or defaults.retention_days,
            incremental_sync=source.effective_incremental(),
            custom_params=source.effective_custom_params(),
            metadata={"source_name": source.name, "template": source.template.platform_source_id},
        )

    def _retry_strategy(self, job: Job) -> RetryStrategy:
        if job.config.max_retries == 0:
            return NoRetry()
        return ExponentialBackoff(
            max_retries=job.config.max_retries,
            base_delay=self.settings.retry_base_delay,
            max_delay=self.settings.retry_max_delay,
            jitter=self.settings.retry_jitter,
        )

    def _retry_context(self, job: Job, endpoint: str | None = None) -> RetryContext:
        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            logger.warning(
                "endpoint.retrying",
                endpoint=endpoint,
                attempt=attempt,
                max_retries=job.config.max_retries,
                delay=round(delay, 3),
                error_type=type(error).__name__,
                error=str(error),
            )

        return RetryContext(
            strategy=self._retry_strategy(job),
            on_retry=on_retry,
            max_retry_after=self.settings.retry_max_delay,
        )

    @staticmethod
    def _check_runnable(source: Source, connection: PlatformConnection | None) -> None:
        if source.is_deleted:
            raise ConfigurationError(f"Source {source.source_id} is deleted").with_context(source_id=source.source_id)
        if not source.is_runnable:
            raise ConfigurationError(
                f"Source {source.source_id} is not runnable (status={source.status.value}, "
                f"enabled={source.settings.enabled})"
            ).with_context(source_id=source.source_id)
        if connection is None:
            return
        if connection.connection_id != source.connection_id:
            raise ConfigurationError(
                f"Connection {connection.connection_id} does not belong to source {source.source_id}"
            ).with_context(source_id=source.source_id)
        if connection.platform_type != source.platform_type:
            raise ConfigurationError(
                f"Connection {connection.connection_id} is for '{connection.platform_type}', "
                f"source {source.source_id} needs '{source.platform_type}'"
            ).with_context(source_id=source.source_id)
        if not connection.is_usable():
            raise ConfigurationError(
                f"Connection {connection.connection_id} is not usable (status={connection.status.value})"
            ).with_context(source_id=source.source_id, platform=connection.platform_type)

    def _skip(self, job: Job, name: str, reason: str) -> None:
        with self._lock:
            result = job.endpoint_results.setdefault(name, EndpointResult(name=name))
            if result.status.is_terminal:
                return
            result.status = EndpointStatus.SKIPPED
            result.skip_reason = reason
            result.completed_at = utcnow()
            job.progress.record_skip(name)
        logger.info("endpoint.skipped", endpoint=name, reason=reason)

    def _record_failure(self, job: Job, name: str, error: BaseException) -> None:
        with self._lock:
            result = job.endpoint_results[name]
            result.status = EndpointStatus.FAILED
            result.error = str(error)
            result.error_type = type(error).__name__
            result.completed_at = utcnow()
            job.progress.record_failure(name, str(error))
        logger.error(
            "endpoint.failed",
            endpoint=name,
            error_type=type(error).__name__,
            category=categorize_error(error).value,
            error=str(error),
            attempts=job.endpoint_results[name].attempts,
        )

    def _fail_job(self, job: Job, error: BaseException) -> None:
        """Systemic failure before any endpoint ran: skip everything and fail."""
        for name in job.config.endpoints:
            self._skip(job, name, f"job failed: {type(error).__name__}")
        with self._lock:
            job.error_message = f"{type(error).__name__}: {error}"
            job.progress.error_message = job.error_message
            job.transition_to(JobStatus.FAILED)
        logger.error("job.failed", error_type=type(error).__name__, error=str(error))

    def _finish(self, job: Job, *, systemic: BackupError | None, cancelled: bool) -> None:
        results = job.endpoint_results.values()
        succeeded = sum(1 for r in results if r.status is EndpointStatus.SUCCEEDED)

        if systemic is not None:
            status = JobStatus.FAILED
            job.error_message = f"{type(systemic).__name__}: {systemic}"
        elif cancelled:
            status = JobStatus.CANCELLED
        elif succeeded == len(job.endpoint_results):
            status = JobStatus.COMPLETED
        elif succeeded:
            status = JobStatus.PARTIALLY_COMPLETED
        else:
            status = JobStatus.FAILED
            job.error_message = job.progress.error_message or "No endpoint succeeded"

        with self._lock:
            job.progress.refresh_percent()
            job.transition_to(status)
        logger.info(
            "job.finished",
            status=status.value,
            succeeded=succeeded,
            failed=job.progress.failed_steps,
            skipped=job.progress.skipped_steps,
            records=job.progress.records_processed,
            size_bytes=job.progress.data_size_bytes,
            percent_complete=job.progress.percent_complete,
        )

    def _result(self, job: Job) -> JobResult:
        with self._lock:
            return JobResult.from_job(job, list(job.config.endpoints))


__all__ = [
    "JobOrchestrator",
    "max_timestamp",
    "new_job_id",
    "payload_size",
]
