"""LIFO stack of compensating actions."""
import logging
from typing import Any, Callable, List, Optional

from .audit import AuditLog
from .models import ActionError, ActionResult, CompensatingAction

logger = logging.getLogger("kubeprov.pipeline.stack")


class CompensationStack:
    """Compensating actions registered during forward execution.

    Actions are applied in exactly the reverse order of registration. A
    failing action never prevents the deeper ones from running.
    """

    def __init__(self, log: Optional[AuditLog] = None):
        self._actions: List[CompensatingAction] = []
        self.log = log

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, action: CompensatingAction) -> None:
        self._actions.append(action)
        logger.debug("Registered compensating action: %s", action.description)

    def register(self, description: str, apply: Callable[[], Any]) -> CompensatingAction:
        """Build a :class:`CompensatingAction` and push it."""
        action = CompensatingAction(description, apply)
        self.push(action)
        return action

    def descriptions(self) -> List[str]:
        """Descriptions in the order the actions would be applied."""
        return [a.description for a in reversed(self._actions)]

    def drain_and_apply_all(self) -> List[ActionResult]:
        results = []
        while self._actions:
            action = self._actions.pop()
            if self.log:
                self.log.info(f"Executing: {action.description}")
            try:
                action.apply()
            except Exception as e:
                failure = ActionError(f"Rollback step failed: {action.description}: {e}")
                results.append(ActionResult(action.description, ok=False, error=str(e)))
                logger.debug("Compensating action %r failed", action.description, exc_info=True)
                if self.log:
                    self.log.error(str(failure))
            else:
                results.append(ActionResult(action.description, ok=True))
        return results

    def discard(self) -> int:
        """Drop every action without applying it. Returns how many were dropped."""
        count = len(self._actions)
        self._actions.clear()
        return count
