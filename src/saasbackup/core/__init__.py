"""Core primitives: errors, structured logging, settings and collaborators.

MODULE MAP
──────────
  errors.py       ─ BackupError hierarchy, HTTP status mapping
  logging.py      ─ structlog configuration, LogContext
  settings.py     ─ EngineSettings (SAASBACKUP_* environment)
  protocols.py    ─ CredentialResolver, WatermarkStoreProtocol, RecordSink
  credentials.py  ─ in-memory and JSON-file credential resolvers
  watermarks.py   ─ forward-only WatermarkStore (memory or sqlite)
  sinks.py        ─ in-memory and JSONL record sinks
"""

from saasbackup.core.credentials import InMemoryCredentialResolver, JsonFileCredentialResolver
from saasbackup.core.errors import (
    AuthenticationError,
    BackupError,
    CancellationError,
    ConfigurationError,
    DataShapeError,
    ErrorCategory,
    ErrorContext,
    MissingCredentialError,
    TransientNetworkError,
)
from saasbackup.core.logging import LogContext, configure_logging, get_logger
from saasbackup.core.protocols import CredentialResolver, RecordSink, WatermarkStoreProtocol
from saasbackup.core.settings import EngineSettings, get_settings
from saasbackup.core.sinks import InMemoryRecordSink, JsonlRecordSink
from saasbackup.core.watermarks import Watermark, WatermarkStore

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "BackupError",
    "ConfigurationError",
    "MissingCredentialError",
    "AuthenticationError",
    "TransientNetworkError",
    "DataShapeError",
    "CancellationError",
    # logging
    "configure_logging",
    "get_logger",
    "LogContext",
    # settings
    "EngineSettings",
    "get_settings",
    # collaborators
    "CredentialResolver",
    "WatermarkStoreProtocol",
    "RecordSink",
    "InMemoryCredentialResolver",
    "JsonFileCredentialResolver",
    "InMemoryRecordSink",
    "JsonlRecordSink",
    "Watermark",
    "WatermarkStore",
]
