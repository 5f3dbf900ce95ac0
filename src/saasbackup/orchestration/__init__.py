"""Job orchestration: endpoint planning and running Sources to completion."""

from saasbackup.orchestration.orchestrator import JobOrchestrator
from saasbackup.orchestration.planner import plan_endpoints

__all__ = ["JobOrchestrator", "plan_endpoints"]
