"""Node: confirm_time — the select/confirm/reschedule state machine.

The node is re-entered by the engine after each resume, so it decides what
to do purely from the state it finds:

  no slot chosen            → ask the user to pick one (select-time)
  the "none" sentinel       → the user wants a human
  an id that is not offered → ask again with a reason
  chosen, unanswered        → ask the user to confirm (confirm-time)
  rejected                  → go back and offer different times
  accepted                  → reschedule if needed, then notify
"""

from __future__ import annotations

import logging

from wellness_agent.collaborators import RescheduleResult
from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import (
    CONFIRM_TIME_TEMPLATE,
    NONE_OF_THESE_WORK_MESSAGE,
    RESCHEDULE_FAILED_TEMPLATE,
    RESCHEDULING_MESSAGE,
    STALE_SLOT_REASON_TEMPLATE,
    TIME_REJECTED_MESSAGE,
)
from wellness_agent.routing import CONFIRM_TIME
from wellness_agent.slots import describe_slot
from wellness_agent.state import (
    NONE_SLOT_ID,
    ConversationState,
    InterruptKind,
    InterruptPayload,
    TimeSlot,
    UiPhase,
    assistant_message,
    find_slot,
)

logger = logging.getLogger(__name__)


def _ask_to_select(slots: list[TimeSlot], reason: str | None = None) -> dict:
    """Raise select-time over ``slots``, or fall back to re-offering if there are none."""
    if not slots:
        logger.info("No slots left to choose from, re-running slot offer")
        return {"escalation_required": True, "selected_slot_id": None, "time_confirmed": None}
    return {
        "ui_phase": UiPhase.SELECTING_TIME,
        "selected_slot_id": None,
        "time_confirmed": None,
        "escalation_required": False,
        "pending_interrupt": InterruptPayload(
            kind=InterruptKind.SELECT_TIME,
            slots=slots,
            reason=reason,
            resume_node=CONFIRM_TIME,
        ),
    }


def make_confirm_time_node(deps: AgentDeps):
    """Create the confirmation node bound to ``deps.scheduler``."""
    scheduler = deps.scheduler

    def _reschedule(state: ConversationState, slot: TimeSlot) -> dict:
        event_id = state["existing_event_id"]
        progress = assistant_message(RESCHEDULING_MESSAGE)
        try:
            result = scheduler.reschedule(
                event_id,
                slot.start.isoformat(),
                slot.end.isoformat(),
                reason="Rescheduled by the patient via chat",
            )
        except Exception as exc:
            logger.warning("Reschedule of %s failed: %s", event_id, exc)
            result = RescheduleResult(success=False, message="the calendar could not be updated")

        if result.success:
            logger.info("Rescheduled event %s to slot %s", event_id, slot.id)
            return {"messages": [progress], "escalation_required": False}

        # Retry with the remaining slots rather than escalating.
        logger.info("Reschedule rejected for slot %s: %s", slot.id, result.message)
        remaining = [candidate for candidate in state.get("available_slots") or [] if candidate.id != slot.id]
        update = _ask_to_select(remaining, reason=result.message)
        update["messages"] = [
            progress,
            assistant_message(RESCHEDULE_FAILED_TEMPLATE.format(reason=result.message.rstrip("."))),
        ]
        update["available_slots"] = remaining
        return update

    def confirm_time_node(state: ConversationState) -> dict:
        slots = state.get("available_slots") or []
        selected_id = state.get("selected_slot_id")
        confirmed = state.get("time_confirmed")

        if selected_id == NONE_SLOT_ID:
            logger.info("User rejected all offered times, escalating")
            return {
                "messages": [assistant_message(NONE_OF_THESE_WORK_MESSAGE)],
                "user_escalated": True,
                "escalation_required": True,
                "slots_unacceptable": True,
                "selected_slot_id": None,
                "time_confirmed": None,
                "ui_phase": UiPhase.ESCALATED,
            }

        if state.get("escalation_required") and confirmed is None:
            # Already declined on an earlier pass; go straight back to offering.
            logger.info("Escalation already pending, returning to slot offer")
            return {"selected_slot_id": None}

        if not selected_id:
            return _ask_to_select(slots)

        slot = find_slot(slots, selected_id)
        if slot is None:
            logger.warning("Selected slot %s is not among the offered slots", selected_id)
            return _ask_to_select(slots, reason=STALE_SLOT_REASON_TEMPLATE.format(slot_id=selected_id))

        if confirmed is None:
            return {
                "messages": [assistant_message(CONFIRM_TIME_TEMPLATE.format(slot=describe_slot(slot)))],
                "ui_phase": UiPhase.CONFIRMING_TIME,
                "escalation_required": False,
                "pending_interrupt": InterruptPayload(
                    kind=InterruptKind.CONFIRM_TIME,
                    slots=[slot],
                    selected_slot_id=slot.id,
                    resume_node=CONFIRM_TIME,
                ),
            }

        if confirmed is False:
            logger.info("User rejected slot %s, looking for other times", slot.id)
            return {
                "messages": [assistant_message(TIME_REJECTED_MESSAGE)],
                "selected_slot_id": None,
                "time_confirmed": None,
                "escalation_required": True,
                "ui_phase": UiPhase.SELECTING_TIME,
            }

        if state.get("existing_event_id"):
            return _reschedule(state, slot)

        logger.info("Slot %s confirmed for a new booking", slot.id)
        return {"escalation_required": False}

    return confirm_time_node
