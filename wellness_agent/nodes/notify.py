"""Node: notify_user — books the confirmed slot and closes the scheduling flow."""

from __future__ import annotations

import logging

from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import APPOINTMENT_CONFIRMED_TEMPLATE, APPOINTMENT_PENDING_TEMPLATE
from wellness_agent.slots import describe_slot
from wellness_agent.state import ConversationState, Intent, UiPhase, assistant_message, find_slot

logger = logging.getLogger(__name__)

# Scheduling sub-state returned to its defaults once a booking is done.
_SCHEDULING_RESET = {
    "ui_phase": UiPhase.CHATTING,
    "user_query": "",
    "intent": Intent.UNKNOWN,
    "selected_slot_id": None,
    "existing_event_id": None,
    "available_slots": [],
    "preferred_date": None,
    "preferred_provider": None,
    "time_confirmed": None,
    "escalation_required": False,
    "slots_unacceptable": False,
}


def make_notify_user_node(deps: AgentDeps):
    """Create the notify node bound to ``deps.scheduler``."""
    scheduler = deps.scheduler

    def notify_user_node(state: ConversationState) -> dict:
        slot = find_slot(state.get("available_slots"), state.get("selected_slot_id"))
        if slot is None or state.get("time_confirmed") is not True:
            logger.warning(
                "Notify reached without a confirmed slot (selected=%s, confirmed=%s)",
                state.get("selected_slot_id"), state.get("time_confirmed"),
            )
            return {}

        is_reschedule = bool(state.get("existing_event_id"))
        booked = True
        if not is_reschedule:
            try:
                record = scheduler.create_appointment(
                    slot.start.isoformat(),
                    slot.end.isoformat(),
                    slot.provider,
                    state.get("user_key") or state["thread_id"],
                )
                logger.info("Created appointment %s for slot %s", record.id, slot.id)
            except Exception as exc:
                logger.error("Creating appointment for slot %s failed: %s", slot.id, exc)
                booked = False

        if booked:
            text = APPOINTMENT_CONFIRMED_TEMPLATE.format(
                action="rescheduled" if is_reschedule else "scheduled",
                slot=describe_slot(slot),
            )
        else:
            text = APPOINTMENT_PENDING_TEMPLATE.format(slot=describe_slot(slot))

        return {"messages": [assistant_message(text)], **_SCHEDULING_RESET}

    return notify_user_node
