"""Tests for the confirmation state machine."""

from __future__ import annotations

from conftest import base_state
from wellness_agent.collaborators import RescheduleResult
from wellness_agent.exceptions import CalendarError
from wellness_agent.nodes.confirm import make_confirm_time_node
from wellness_agent.prompts import NONE_OF_THESE_WORK_MESSAGE, RESCHEDULING_MESSAGE, STALE_SLOT_REASON_TEMPLATE
from wellness_agent.state import NONE_SLOT_ID, InterruptKind, UiPhase


def _run(deps, **overrides):
    return make_confirm_time_node(deps)(base_state(**overrides))


class TestSelection:
    def test_no_selection_asks_to_select(self, deps, slots):
        result = _run(deps, available_slots=slots)
        assert result["pending_interrupt"].kind is InterruptKind.SELECT_TIME
        assert result["pending_interrupt"].slots == slots
        assert result["ui_phase"] is UiPhase.SELECTING_TIME

    def test_no_selection_and_no_slots_re_offers(self, deps):
        result = _run(deps, available_slots=[])
        assert result["escalation_required"] is True
        assert "pending_interrupt" not in result

    def test_selected_slot_asks_to_confirm(self, deps, slots):
        result = _run(deps, available_slots=slots, selected_slot_id="s2")
        pending = result["pending_interrupt"]
        assert pending.kind is InterruptKind.CONFIRM_TIME
        assert pending.selected_slot_id == "s2"
        assert pending.resume_node == "confirm_time"
        assert result["ui_phase"] is UiPhase.CONFIRMING_TIME
        assert "Is this correct?" in result["messages"][0].content

    def test_stale_slot_id_re_asks_with_reason(self, deps, slots):
        result = _run(deps, available_slots=slots, selected_slot_id="s99")
        pending = result["pending_interrupt"]
        assert pending.kind is InterruptKind.SELECT_TIME
        assert pending.reason == STALE_SLOT_REASON_TEMPLATE.format(slot_id="s99")
        assert result["selected_slot_id"] is None

    def test_second_stale_id_changes_the_question(self, deps, slots):
        first = _run(deps, available_slots=slots, selected_slot_id="s99")["pending_interrupt"]
        second = _run(deps, available_slots=slots, selected_slot_id="s98")["pending_interrupt"]
        assert "s98" in second.reason
        assert second != first


class TestNoneOfTheseWork:
    def test_none_sentinel_escalates(self, deps, slots):
        result = _run(deps, available_slots=slots, selected_slot_id=NONE_SLOT_ID)
        assert result["user_escalated"] is True
        assert result["escalation_required"] is True
        assert result["slots_unacceptable"] is True
        assert result["ui_phase"] is UiPhase.ESCALATED
        assert result["messages"][0].content == NONE_OF_THESE_WORK_MESSAGE
        assert "pending_interrupt" not in result


class TestConfirmation:
    def test_rejection_loops_back(self, deps, slots):
        result = _run(deps, available_slots=slots, selected_slot_id="s1", time_confirmed=False)
        assert result["escalation_required"] is True
        assert result["selected_slot_id"] is None
        assert result["time_confirmed"] is None
        assert "pending_interrupt" not in result

    def test_previous_decline_short_circuits(self, deps, slots):
        result = _run(deps, available_slots=slots, selected_slot_id="s1", escalation_required=True)
        assert result == {"selected_slot_id": None}

    def test_new_booking_confirmed_proceeds(self, deps, slots, scheduler):
        result = _run(deps, available_slots=slots, selected_slot_id="s1", time_confirmed=True)
        assert result == {"escalation_required": False}
        scheduler.reschedule.assert_not_called()


class TestReschedule:
    def test_successful_reschedule(self, deps, slots, scheduler):
        result = _run(
            deps, available_slots=slots, selected_slot_id="s2",
            time_confirmed=True, existing_event_id="evt_old",
        )
        scheduler.reschedule.assert_called_once()
        args = scheduler.reschedule.call_args.args
        assert args[0] == "evt_old"
        assert args[1] == slots[1].start.isoformat()
        assert result["escalation_required"] is False
        assert result["messages"][0].content == RESCHEDULING_MESSAGE
        assert "pending_interrupt" not in result

    def test_rejected_reschedule_retries_with_remaining_slots(self, deps, slots, scheduler):
        scheduler.reschedule.return_value = RescheduleResult(success=False, message="Slot taken")
        result = _run(
            deps, available_slots=slots, selected_slot_id="s2",
            time_confirmed=True, existing_event_id="evt_old",
        )
        pending = result["pending_interrupt"]
        assert pending.kind is InterruptKind.SELECT_TIME
        assert pending.reason == "Slot taken"
        assert [s.id for s in pending.slots] == ["s1", "s3"]
        assert result["escalation_required"] is False
        assert result["time_confirmed"] is None
        assert "Slot taken" in result["messages"][-1].content

    def test_reschedule_exception_is_handled(self, deps, slots, scheduler):
        scheduler.reschedule.side_effect = CalendarError("boom")
        result = _run(
            deps, available_slots=slots[:1], selected_slot_id="s1",
            time_confirmed=True, existing_event_id="evt_old",
        )
        # Nothing left to offer, so the offer pipeline runs again
        assert result["escalation_required"] is True
        assert result["available_slots"] == []
        assert "pending_interrupt" not in result
