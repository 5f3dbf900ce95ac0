"""
saasbackup - connector and extraction engine for SaaS platform backups.

Connect to third-party SaaS APIs (CRM, payments), walk their endpoints in
dependency order and hand every record to a storage sink.

Subpackages:
- saasbackup.core: errors, logging, settings, collaborator protocols
- saasbackup.catalog: platforms, endpoints, sources, the immutable catalog
- saasbackup.connectors: fetch engine, auth, rate limiting, Keap, Stripe
- saasbackup.execution: job state machine, progress, retry strategies
- saasbackup.orchestration: endpoint planner and job orchestrator
- saasbackup.cli: ``saasbackup`` command line
"""

__version__ = "0.1.0"

from saasbackup.connectors.registry import default_registry, get_connector, list_connectors
from saasbackup.core.errors import BackupError, ConfigurationError
from saasbackup.execution.models import JobResult, JobStatus
from saasbackup.orchestration.orchestrator import JobOrchestrator

__all__ = [
    "__version__",
    "BackupError",
    "ConfigurationError",
    "JobOrchestrator",
    "JobResult",
    "JobStatus",
    "default_registry",
    "get_connector",
    "list_connectors",
]
