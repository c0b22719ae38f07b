"""Data models for the provisioning pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class Criticality(str, Enum):
    """How a step failure affects the rest of the pipeline."""
    FATAL = 'fatal'
    WARNING = 'warning'


class LogLevel(str, Enum):
    """Severity of an audit log record."""
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


class RollbackPhase(str, Enum):
    """Phases of the rollback controller."""
    IDLE = 'idle'
    DRAINING = 'draining'
    RESTORING = 'restoring'
    DONE = 'done'


class OutcomeStatus(str, Enum):
    """Final status of a pipeline run."""
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class StepError(Exception):
    """Raised by a step body when its mutation group could not be applied."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step


class CommandError(StepError):
    """An external command exited non-zero, timed out or was not found."""

    def __init__(self, message: str, command: str = '', returncode: Optional[int] = None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class ActionError(Exception):
    """A compensating action failed while rolling back."""


@dataclass(frozen=True)
class CompensatingAction:
    """A reversal operation registered by a step, applied only on rollback."""
    description: str
    apply: Callable[[], Any]


@dataclass(frozen=True)
class Step:
    """One ordered unit of pipeline work.

    ``run`` receives the :class:`PipelineRunState` of the current run so the
    body can push compensations and record best-effort warnings.
    """
    name: str
    run: Callable[[Any], None]
    criticality: Criticality = Criticality.FATAL

    @property
    def is_fatal(self) -> bool:
        return self.criticality is Criticality.FATAL


@dataclass(frozen=True)
class AuditRecord:
    """A single timestamped audit log entry."""
    timestamp: datetime
    level: LogLevel
    message: str


@dataclass(frozen=True)
class ActionResult:
    """Result of applying one compensating action."""
    description: str
    ok: bool
    error: Optional[str] = None


@dataclass
class RollbackReport:
    """Summary of a completed rollback."""
    results: List[ActionResult] = field(default_factory=list)
    restored_services: List[str] = field(default_factory=list)
    failed_services: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ActionResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[ActionResult]:
        return [r for r in self.results if not r.ok]


@dataclass
class RunOutcome:
    """What a pipeline run returns to its caller."""
    status: OutcomeStatus
    kind: str
    log_path: Optional[str] = None
    completed_steps: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[StepError] = None
    rollback: Optional[RollbackReport] = None
    warnings: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
