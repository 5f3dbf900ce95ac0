"""
Structured error types for the backup engine.

Every failure the engine can hit while talking to a third-party platform is
one of a small set of typed errors. Each error carries enough metadata for the
orchestrator to decide, without string matching, whether to retry, fail one
endpoint, or fail the whole job:

- **Category:** What kind of error (network, source, parse, auth, config, ...)
- **Retryable:** Whether the same call may succeed if repeated
- **Retry-after:** How long the upstream asked us to wait (HTTP 429)
- **Context:** job, source, platform, endpoint, URL and HTTP status
- **Cause:** The chained underlying exception (httpx, json, sqlite, ...)

Manifesto:
    - **Typed over stringly:** Retry and failure policy key off the class
    - **Systemic vs local:** Auth and configuration errors fail a job,
      everything else fails a single endpoint
    - **Never silent:** Every error renders to a dict for the job's
      per-endpoint error summary

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────────┐
        │                          BackupError                              │
        │        (category, retryable, retry_after, context, cause)         │
        ├──────────────────────────────────────────────────────────────────┤
        │                                                                   │
        │  ConfigurationError      AuthenticationError   TransientNetworkError│
        │  (CONFIG, systemic)      (AUTH, systemic)      (NETWORK, retryable)│
        │       │                                              │             │
        │  MissingCredentialError                        RequestTimeoutError │
        │  InvalidCredentialError                        ServerError (5xx)   │
        │  CycleDetectedError*                           RateLimitError (429)│
        │  DependencyError*                                                  │
        │                                                                    │
        │  SourceError             DataShapeError        CancellationError   │
        │  (SOURCE)                (PARSE)               (CANCELLED)         │
        │       │                                                            │
        │  EndpointNotFoundError (404)                   StorageError        │
        │  HTTPStatusError (other non-2xx)               (STORAGE)           │
        │  PaginationLimitError                                              │
        └──────────────────────────────────────────────────────────────────┘

        * defined in saasbackup.catalog.exceptions

Examples:
    >>> err = error_for_status(503, url="https://api.stripe.com/v1/charges")
    >>> type(err).__name__, err.retryable
    ('ServerError', True)
    >>> is_systemic(error_for_status(401))
    True

Tags:
    errors, retry-logic, http-status, saasbackup
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"

    # Upstream platform errors
    SOURCE = "SOURCE"
    PARSE = "PARSE"

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"
    AUTH = "AUTH"

    # Run control
    ORCHESTRATION = "ORCHESTRATION"
    CANCELLED = "CANCELLED"

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set are rendered by ``to_dict()``, so the same
    context type serves connector-level errors (platform, url, http_status)
    and orchestrator-level errors (job_id, source_id, endpoint).

    Examples:
        >>> ErrorContext(platform="stripe", http_status=429).to_dict()
        {'platform': 'stripe', 'http_status': 429}

    Guardrails:
        ❌ DON'T: Put credentials or raw tokens in metadata
        ✅ DO: Store ids and small values for logging
    """

    job_id: str | None = None
    source_id: str | None = None
    platform: str | None = None
    endpoint: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding unset values."""
        result: dict[str, Any] = {}
        for key in ("job_id", "source_id", "platform", "endpoint", "url", "http_status"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result.update(self.metadata)
        return result


class BackupError(Exception):
    """
    Base class for all engine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance. ``cause`` is chained through ``__cause__`` so
    tracebacks keep the original httpx/json exception.

    Examples:
        >>> err = BackupError("boom", category=ErrorCategory.INTERNAL)
        >>> err.with_context(endpoint="contacts").context.endpoint
        'contacts'
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BackupError:
        """Add context fields in place; unknown keys go to ``metadata``."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (systemic, never retried)
# =============================================================================


class ConfigurationError(BackupError):
    """
    Invalid or missing configuration detected before or at construction.

    Raised for missing credential aliases, malformed keys, unknown platform
    types or endpoints, and dependency cycles in a catalog. Fails the job
    (or the catalog load) immediately.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingCredentialError(ConfigurationError):
    """None of the accepted credential fields is present."""

    def __init__(self, message: str, *, aliases: tuple[str, ...] = (), **kwargs: Any):
        super().__init__(message, **kwargs)
        self.aliases = tuple(aliases)
        if self.aliases:
            self.context.metadata["accepted_aliases"] = list(self.aliases)


class InvalidCredentialError(ConfigurationError):
    """A credential is present but has the wrong shape (e.g. key prefix)."""


# =============================================================================
# AUTHENTICATION (systemic, never retried)
# =============================================================================


class AuthenticationError(BackupError):
    """
    The platform rejected our credentials (HTTP 401/403) or they expired.

    Every endpoint of the job would fail the same way, so the orchestrator
    treats this as systemic and fails the whole job.
    """

    default_category = ErrorCategory.AUTH
    default_retryable = False


# =============================================================================
# TRANSIENT ERRORS (retried with backoff)
# =============================================================================


class TransientNetworkError(BackupError):
    """
    Temporary failure that may succeed on retry.

    Timeouts, connection resets, 5xx responses and 429 responses. Retried up
    to ``JobConfig.max_retries`` times; exhaustion fails only the endpoint.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class RequestTimeoutError(TransientNetworkError):
    """HTTP call exceeded the connector timeout."""


class ServerError(TransientNetworkError):
    """Platform answered with a 5xx status."""


class RateLimitError(TransientNetworkError):
    """Platform answered 429; ``retry_after`` holds its requested delay."""

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, retry_after=retry_after, **kwargs)


# =============================================================================
# SOURCE ERRORS (per-endpoint, not retried)
# =============================================================================


class SourceError(BackupError):
    """The platform answered, but not with something we can use."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class EndpointNotFoundError(SourceError):
    """HTTP 404 for an endpoint URL."""


class HTTPStatusError(SourceError):
    """Any other non-2xx status that is neither auth, 404, 429 nor 5xx."""


class PaginationLimitError(SourceError):
    """Pagination did not terminate within the configured page bound."""


class DataShapeError(BackupError):
    """
    Response body is not JSON or lacks the expected entity array.

    ``path`` names the entity key that was looked up so the log line points
    at the offending envelope field.
    """

    default_category = ErrorCategory.PARSE
    default_retryable = False

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path
        if path is not None:
            self.context.metadata["path"] = path


# =============================================================================
# RUN CONTROL AND STORAGE
# =============================================================================


class CancellationError(BackupError):
    """Operator asked for the job to stop. Not a failure."""

    default_category = ErrorCategory.CANCELLED
    default_retryable = False


class StorageError(BackupError):
    """Record sink or watermark store could not commit."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def error_for_status(
    status: int,
    *,
    url: str | None = None,
    platform: str | None = None,
    body: str | None = None,
    retry_after: float | None = None,
) -> BackupError:
    """Map a non-2xx HTTP status to the matching error instance."""
    context = ErrorContext(platform=platform, url=url, http_status=status)
    detail = f"HTTP {status}"
    if url:
        detail = f"{detail} from {url}"
    if body:
        context.metadata["body"] = body[:500]

    if status in (401, 403):
        return AuthenticationError(f"Credentials rejected: {detail}", context=context)
    if status == 404:
        return EndpointNotFoundError(f"Endpoint not found: {detail}", context=context)
    if status == 429:
        return RateLimitError(f"Rate limited: {detail}", retry_after=retry_after, context=context)
    if status >= 500:
        return ServerError(f"Server error: {detail}", context=context)
    return HTTPStatusError(f"Unexpected status: {detail}", context=context)


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, BackupError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def is_systemic(error: BaseException) -> bool:
    """True when the error would fail every endpoint of a job identically."""
    return isinstance(error, (AuthenticationError, ConfigurationError))


def get_retry_after(error: BaseException) -> float | None:
    """Get retry delay from error, if specified."""
    if isinstance(error, BackupError):
        return error.retry_after
    return None


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, BackupError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


__all__ = [
    # Category enum
    "ErrorCategory",
    # Context
    "ErrorContext",
    # Base
    "BackupError",
    # Configuration
    "ConfigurationError",
    "MissingCredentialError",
    "InvalidCredentialError",
    # Auth
    "AuthenticationError",
    # Transient
    "TransientNetworkError",
    "RequestTimeoutError",
    "ServerError",
    "RateLimitError",
    # Source
    "SourceError",
    "EndpointNotFoundError",
    "HTTPStatusError",
    "PaginationLimitError",
    "DataShapeError",
    # Run control
    "CancellationError",
    "StorageError",
    # Utilities
    "error_for_status",
    "is_retryable",
    "is_systemic",
    "get_retry_after",
    "categorize_error",
]
