"""Rollback controller: drain compensations, then restore services."""
import logging
from typing import Dict, Optional

from .audit import AuditLog
from .models import RollbackPhase, RollbackReport
from .stack import CompensationStack

logger = logging.getLogger("kubeprov.pipeline.rollback")

ROLLBACK_SERVICES = ('kubelet', 'containerd', 'docker')


class RollbackController:
    """Runs at most one rollback: Idle -> Draining -> Restoring -> Done.

    ``services`` is anything with ``is_active(name)`` and ``start(name)``.
    Nothing raised by a compensation or a service restart escapes.
    """

    def __init__(
        self,
        stack: CompensationStack,
        log: AuditLog,
        services,
        initial_service_state: Dict[str, bool],
    ):
        self.stack = stack
        self.log = log
        self.services = services
        self.initial_service_state = initial_service_state
        self.phase = RollbackPhase.IDLE
        self.report: Optional[RollbackReport] = None

    def rollback(self) -> RollbackReport:
        if self.phase is not RollbackPhase.IDLE:
            logger.warning("Rollback already performed (phase=%s); ignoring", self.phase.value)
            return self.report

        self.report = RollbackReport()
        self.log.info("Starting rollback process...")

        self.phase = RollbackPhase.DRAINING
        self.report.results = self.stack.drain_and_apply_all()

        self.phase = RollbackPhase.RESTORING
        self._restore_services()

        self.phase = RollbackPhase.DONE
        failed = len(self.report.failed)
        if failed:
            self.log.error(
                f"Rollback completed with {failed} failed action(s) "
                f"out of {len(self.report.results)}."
            )
        else:
            self.log.info("Rollback completed. System restored to initial state.")
        return self.report

    def _restore_services(self) -> None:
        for service, was_active in self.initial_service_state.items():
            if not was_active:
                continue
            try:
                if self.services.is_active(service):
                    continue
                self.log.info(f"Restoring {service} service...")
                self.services.start(service)
            except Exception as e:
                self.report.failed_services.append(service)
                self.log.error(f"Failed to restore {service} service: {e}")
            else:
                self.report.restored_services.append(service)
