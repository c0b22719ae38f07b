"""Step pipeline with compensating rollback.

- models: steps, actions, outcomes and error types
- audit: per-run audit log
- stack: compensation stack
- rollback: rollback controller
- runner: pipeline runner and run state
"""

from .audit import AuditLog, WARNING_MARKER, log_path_for, scan_warnings
from .models import (
    ActionError,
    ActionResult,
    AuditRecord,
    CommandError,
    CompensatingAction,
    Criticality,
    LogLevel,
    OutcomeStatus,
    RollbackPhase,
    RollbackReport,
    RunOutcome,
    Step,
    StepError,
)
from .rollback import ROLLBACK_SERVICES, RollbackController
from .runner import STEP_START_PREFIX, PipelineRunner, PipelineRunState
from .stack import CompensationStack

__all__ = [
    'AuditLog',
    'WARNING_MARKER',
    'log_path_for',
    'scan_warnings',
    'ActionError',
    'ActionResult',
    'AuditRecord',
    'CommandError',
    'CompensatingAction',
    'Criticality',
    'LogLevel',
    'OutcomeStatus',
    'RollbackPhase',
    'RollbackReport',
    'RunOutcome',
    'Step',
    'StepError',
    'ROLLBACK_SERVICES',
    'RollbackController',
    'STEP_START_PREFIX',
    'PipelineRunner',
    'PipelineRunState',
    'CompensationStack',
]
