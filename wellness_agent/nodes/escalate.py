"""Node: escalate_human — hands the conversation to clinic staff."""

from __future__ import annotations

import logging

from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import ESCALATION_MESSAGE_TEMPLATE, ESCALATION_REASONS
from wellness_agent.services.metrics import metrics
from wellness_agent.state import ConversationState, UiPhase, assistant_message

logger = logging.getLogger(__name__)


def select_escalation_reason(state: ConversationState, window_days: int) -> str:
    """First matching reason wins: window, unacceptable times, no slots, generic."""
    if state.get("date_beyond_scheduling_window"):
        return ESCALATION_REASONS["beyond_window"].format(days=window_days)
    if state.get("slots_unacceptable"):
        return ESCALATION_REASONS["times_unacceptable"]
    if not state.get("available_slots"):
        return ESCALATION_REASONS["no_slots"]
    return ESCALATION_REASONS["generic"]


def make_escalate_human_node(deps: AgentDeps):
    """Create the escalation node bound to ``deps.pager``."""
    pager = deps.pager
    window_days = deps.settings.scheduling_window_days

    def escalate_human_node(state: ConversationState) -> dict:
        reason = select_escalation_reason(state, window_days)
        user_key = state.get("user_key") or state["thread_id"]

        try:
            result = pager.escalate_to_human(user_key, reason)
            logger.info(
                "Escalated %s to staff (id=%s, success=%s)",
                user_key, result.escalation_id, result.success,
            )
            metrics.record_escalation(result.success)
        except Exception as exc:
            # The user still gets told a human will follow up.
            logger.error("Escalation paging failed for %s: %s", user_key, exc)
            metrics.record_escalation(False)

        return {
            "messages": [assistant_message(ESCALATION_MESSAGE_TEMPLATE.format(reason=reason))],
            "ui_phase": UiPhase.ESCALATED,
            "user_escalated": True,
            "slots_unacceptable": True,
            "escalation_required": False,
            "date_beyond_scheduling_window": False,
            "user_query": "",
            "pending_interrupt": None,
            "selected_slot_id": None,
            "time_confirmed": None,
        }

    return escalate_human_node
