"""Pipeline runner: ordered step execution with compensation on fatal failure."""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .audit import AuditLog
from .models import OutcomeStatus, RunOutcome, Step, StepError
from .rollback import ROLLBACK_SERVICES, RollbackController
from .stack import CompensationStack

logger = logging.getLogger("kubeprov.pipeline.runner")

STEP_START_PREFIX = 'Starting step: '


@dataclass
class PipelineRunState:
    """Everything one pipeline run owns. Step bodies receive it as their argument."""
    kind: str
    log: AuditLog
    stack: CompensationStack
    is_master: bool = False
    initial_service_state: Dict[str, bool] = field(default_factory=dict)
    completed_steps: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)

    def compensate(self, description: str, apply: Callable[[], Any]) -> None:
        """Register the reversal of a mutation that has just been applied."""
        self.stack.register(description, apply)

    def warn(self, message: str) -> None:
        self.log.warning(message)

    def best_effort(self, description: str, fn: Callable[..., Any], *args, **kwargs) -> bool:
        """Run a call whose failure degrades but does not invalidate the run.

        Returns True on success. Failures are logged as ``Warning:`` records.
        """
        try:
            fn(*args, **kwargs)
        except (StepError, OSError) as e:
            self.log.warning(f"{description}: {e}")
            return False
        return True


class PipelineRunner:
    """Executes steps strictly in order and rolls back on a fatal failure.

    Preflight hooks run before the steps and postflight hooks after them. Both
    share the :class:`Step` contract. Two runners must never operate on the
    same host at the same time.
    """

    def __init__(
        self,
        kind: str,
        log: AuditLog,
        services,
        is_master: bool = False,
        preflight: Sequence[Step] = (),
        postflight: Sequence[Step] = (),
        probe_services: Sequence[str] = ROLLBACK_SERVICES,
    ):
        self.kind = kind
        self.log = log
        self.services = services
        self.is_master = is_master
        self.preflight = list(preflight)
        self.postflight = list(postflight)
        self.probe_services = list(probe_services)
        self.state: Optional[PipelineRunState] = None

    def capture_service_state(self) -> Dict[str, bool]:
        self.log.info("Saving initial system state...")
        service_state = {name: bool(self.services.is_active(name)) for name in self.probe_services}
        labels = [f"{name}_{'active' if active else 'inactive'}" for name, active in service_state.items()]
        labels.append('is_master' if self.is_master else 'is_node')
        self.log.detail(f"Initial state saved: {' '.join(labels)}")
        return service_state

    def run(self, steps: Sequence[Step]) -> RunOutcome:
        state = PipelineRunState(
            kind=self.kind,
            log=self.log,
            stack=CompensationStack(self.log),
            is_master=self.is_master,
        )
        state.initial_service_state = self.capture_service_state()
        self.state = state

        for step in [*self.preflight, *steps, *self.postflight]:
            error = self._attempt(step, state)
            if error is None:
                continue
            if step.is_fatal:
                return self._abort(step, error, state)
            self.log.error(f"Warning: step '{step.name}' failed: {error.message}")

        discarded = state.stack.discard()
        logger.debug("Discarded %d compensating actions after successful run", discarded)
        self.log.info(f"✅ Pipeline {self.kind} completed ({len(state.completed_steps)} steps)")
        return RunOutcome(
            status=OutcomeStatus.COMPLETED,
            kind=self.kind,
            log_path=str(self.log.path),
            completed_steps=list(state.completed_steps),
            warnings=self.log.collect_warnings(),
            outputs=dict(state.outputs),
        )

    def _attempt(self, step: Step, state: PipelineRunState) -> Optional[StepError]:
        self.log.info(f"{STEP_START_PREFIX}{step.name}")
        try:
            step.run(state)
        except StepError as e:
            e.step = step.name
            return e
        except Exception as e:
            logger.error("Unexpected error in step %s", step.name, exc_info=True)
            self.log.detail(f"Unexpected {type(e).__name__} in step {step.name}: {e}")
            return StepError(f"{type(e).__name__}: {e}", step=step.name)
        state.completed_steps.append(step.name)
        self.log.info(f"✓ {step.name} completed")
        return None

    def _abort(self, step: Step, error: StepError, state: PipelineRunState) -> RunOutcome:
        self.log.error(f"ERROR: {step.name} failed: {error.message}")
        self.log.info(f"Check the log file for details: {self.log.path}")
        self.log.info("Executing rollback operations...")
        controller = RollbackController(
            state.stack, self.log, self.services, state.initial_service_state
        )
        report = controller.rollback()
        return RunOutcome(
            status=OutcomeStatus.ABORTED,
            kind=self.kind,
            log_path=str(self.log.path),
            completed_steps=list(state.completed_steps),
            failed_step=step.name,
            error=error,
            rollback=report,
            warnings=self.log.collect_warnings(),
            outputs=dict(state.outputs),
        )
