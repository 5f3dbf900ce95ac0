"""Tests for the job state machine and progress counters."""

from __future__ import annotations

import pytest

from saasbackup.execution.models import (
    JOB_VALID_TRANSITIONS,
    EndpointResult,
    EndpointStatus,
    InvalidTransitionError,
    Job,
    JobConfig,
    JobProgress,
    JobResult,
    JobStatus,
    validate_job_transition,
)


class TestJobStatusTransitions:
    @pytest.mark.parametrize(
        "target",
        [JobStatus.COMPLETED, JobStatus.PARTIALLY_COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED],
    )
    def test_running_to_terminal(self, target):
        validate_job_transition(JobStatus.RUNNING, target)

    def test_pending_can_be_cancelled(self):
        validate_job_transition(JobStatus.PENDING, JobStatus.CANCELLED)

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidTransitionError):
            validate_job_transition(JobStatus.PENDING, JobStatus.COMPLETED)

    @pytest.mark.parametrize("terminal", [s for s in JobStatus if s.is_terminal])
    def test_terminal_states_are_frozen(self, terminal):
        assert JOB_VALID_TRANSITIONS[terminal] == frozenset()
        for target in JobStatus:
            with pytest.raises(InvalidTransitionError):
                validate_job_transition(terminal, target)

    def test_error_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)
        assert "completed" in str(exc_info.value)
        assert exc_info.value.target == "running"

    def test_job_timestamps(self):
        job = Job(job_id="j", source_id="s", platform_type="fake")
        assert job.started_at is None

        job.transition_to(JobStatus.RUNNING)
        assert job.started_at is not None
        assert job.completed_at is None

        job.transition_to(JobStatus.COMPLETED)
        assert job.is_terminal
        assert job.completed_at >= job.started_at
        with pytest.raises(InvalidTransitionError):
            job.transition_to(JobStatus.FAILED)


class TestJobProgress:
    def test_percent_tracks_completed_steps(self):
        progress = JobProgress(total_steps=4)
        progress.record_success("a", 10, 100)
        assert progress.percent_complete == 25.0
        progress.record_success("b", 5, 50)
        assert progress.percent_complete == 50.0
        assert progress.records_processed == 15
        assert progress.data_size_bytes == 150

    def test_failures_and_skips_do_not_move_percent(self):
        progress = JobProgress(total_steps=3)
        progress.record_success("a", 1, 1)
        progress.record_failure("b", "boom")
        progress.record_skip("c")

        assert progress.percent_complete == pytest.approx(33.33)
        assert progress.failed_steps == 1
        assert progress.skipped_steps == 1
        assert progress.finished_steps == 3
        assert progress.error_message == "b: boom"

    def test_percent_never_decreases(self):
        progress = JobProgress(total_steps=2)
        progress.record_success("a", 1, 1)
        progress.total_steps = 10
        progress.refresh_percent()
        assert progress.percent_complete == 50.0

    def test_zero_steps_is_complete(self):
        progress = JobProgress(total_steps=0)
        progress.refresh_percent()
        assert progress.percent_complete == 100.0

    def test_current_step(self):
        progress = JobProgress(total_steps=1)
        progress.start_step("a")
        assert progress.current_step == "a"
        progress.record_success("a", 0, 0)
        assert progress.current_step is None

    def test_snapshot_is_independent(self):
        progress = JobProgress(total_steps=2)
        snap = progress.snapshot()
        progress.record_success("a", 3, 3)
        assert snap.completed_steps == 0
        assert snap.to_dict()["total_steps"] == 2


class TestJobConfig:
    def test_list_endpoints_become_tuple(self):
        assert JobConfig(endpoints=["a", "b"]).endpoints == ("a", "b")

    @pytest.mark.parametrize("kwargs", [{"max_retries": -1}, {"timeout_seconds": 0}])
    def test_invalid_limits(self, kwargs):
        with pytest.raises(ValueError):
            JobConfig(**kwargs)


class TestJobResult:
    @pytest.fixture
    def result(self):
        job = Job(
            job_id="job-1",
            source_id="src-1",
            platform_type="fake",
            config=JobConfig(endpoints=("a", "b", "c")),
            endpoint_results={
                "a": EndpointResult(name="a", status=EndpointStatus.SUCCEEDED, records=3, attempts=1),
                "b": EndpointResult(
                    name="b",
                    status=EndpointStatus.FAILED,
                    error="Server error: HTTP 503",
                    error_type="ServerError",
                    attempts=4,
                ),
                "c": EndpointResult(name="c", status=EndpointStatus.SKIPPED, skip_reason="dependency did not succeed: b"),
            },
        )
        job.transition_to(JobStatus.RUNNING)
        job.transition_to(JobStatus.PARTIALLY_COMPLETED)
        return JobResult.from_job(job, ["a", "b", "c"])

    def test_partitions(self, result):
        assert result.succeeded == ["a"]
        assert result.failed == ["b"]
        assert result.skipped == ["c"]

    def test_error_summary(self, result):
        assert result.error_summary() == {
            "b": "ServerError: Server error: HTTP 503",
            "c": "skipped: dependency did not succeed: b",
        }

    def test_to_dict(self, result):
        payload = result.to_dict()
        assert payload["status"] == "partially_completed"
        assert payload["execution_order"] == ["a", "b", "c"]
        assert payload["endpoints"]["a"] == {
            "name": "a",
            "status": "succeeded",
            "records": 3,
            "size_bytes": 0,
            "attempts": 1,
        }
        assert payload["endpoints"]["c"]["skip_reason"] == "dependency did not succeed: b"
        assert payload["completed_at"] is not None
