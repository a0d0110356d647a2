"""Escalation pager that records hand-offs and logs them for staff."""

from __future__ import annotations

import logging
import threading
import time

from wellness_agent.collaborators import EscalationResult
from wellness_agent.exceptions import EscalationError
from wellness_agent.services.metrics import metrics

logger = logging.getLogger(__name__)


class LoggingEscalationPager:
    """Writes every escalation to the log at WARNING and keeps a local record.

    Stands in for a real paging channel (chat webhook, ticket queue) that
    would implement the same ``escalate_to_human`` method.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.escalations: list[dict[str, str]] = []

    def escalate_to_human(self, user_key: str, reason: str) -> EscalationResult:
        if not user_key.strip():
            raise EscalationError("Cannot escalate without a user key")
        with metrics.timed("pager", "escalate_to_human"):
            escalation_id = f"escalation_{int(time.time() * 1000)}_{user_key}"
            with self._lock:
                self.escalations.append(
                    {"escalation_id": escalation_id, "user_key": user_key, "reason": reason}
                )
            logger.warning("ESCALATION %s for %s: %s", escalation_id, user_key, reason)
            return EscalationResult(success=True, escalation_id=escalation_id)
