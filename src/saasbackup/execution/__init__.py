"""Job execution model: state machine, progress and retry strategies."""

from saasbackup.execution.models import (
    EndpointResult,
    EndpointStatus,
    InvalidTransitionError,
    Job,
    JobConfig,
    JobProgress,
    JobResult,
    JobStatus,
)
from saasbackup.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy

__all__ = [
    "EndpointResult",
    "EndpointStatus",
    "InvalidTransitionError",
    "Job",
    "JobConfig",
    "JobProgress",
    "JobResult",
    "JobStatus",
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
]
