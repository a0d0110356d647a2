"""Tests for the three-stage slot-offer pipeline."""

from __future__ import annotations

from datetime import date

from langchain_core.messages import AIMessage, ToolMessage

from conftest import base_state, make_slots
from wellness_agent.collaborators import Completion, ToolCall
from wellness_agent.exceptions import CalendarError, CompletionError
from wellness_agent.nodes.offer import (
    TOOL_ERROR_CONTENT,
    is_beyond_scheduling_window,
    make_offer_options_agent_node,
    make_offer_options_final_node,
    make_offer_options_tools_node,
)
from wellness_agent.prompts import AVAILABILITY_ERROR_MESSAGE, NO_SLOTS_MESSAGE, SLOTS_PRESENTED_MESSAGE
from wellness_agent.routing import CONFIRM_TIME
from wellness_agent.slots import slots_to_json
from wellness_agent.state import InterruptKind, UiPhase


def _tool_call_message(args=None, call_id="call_1"):
    return AIMessage(
        content="",
        id="a1",
        tool_calls=[{"id": call_id, "name": "get_availability", "args": args or {}}],
    )


# ── Stage A ──────────────────────────────────────────────────────────


class TestSchedulingWindow:
    def test_within_window(self):
        assert is_beyond_scheduling_window("2030-01-10", 14, today=date(2030, 1, 1)) is False

    def test_beyond_window(self):
        assert is_beyond_scheduling_window("2030-02-01", 14, today=date(2030, 1, 1)) is True

    def test_no_or_bad_date(self):
        assert is_beyond_scheduling_window(None, 14) is False
        assert is_beyond_scheduling_window("next tuesday", 14) is False


class TestOfferAgent:
    def test_records_model_tool_calls(self, deps, completion):
        node = make_offer_options_agent_node(deps)
        result = node(base_state(preferred_provider="Mike"))
        message = result["messages"][0]
        assert message.tool_calls[0]["name"] == "get_availability"
        assert message.tool_calls[0]["id"] == "call_1"
        tools = completion.complete.call_args.kwargs["tools"]
        assert [t.name for t in tools] == ["get_availability"]
        assert "Mike" in completion.complete.call_args.args[0][0].content

    def test_completion_failure_falls_back_to_direct_lookup(self, deps, completion):
        completion.complete.side_effect = CompletionError("down")
        node = make_offer_options_agent_node(deps)
        result = node(base_state(preferred_date="2099-01-01", preferred_provider="Sarah"))
        # A far-future date is beyond the window, so no call at all
        assert "messages" not in result

        result = node(base_state(preferred_provider="Sarah"))
        call = result["messages"][0].tool_calls[0]
        assert call["name"] == "get_availability"
        assert call["id"].startswith("call_fallback_")
        assert call["args"] == {"preferred_date": None, "preferred_provider": "Sarah"}

    def test_beyond_window_skips_the_model(self, deps, completion):
        node = make_offer_options_agent_node(deps)
        result = node(base_state(preferred_date="2099-12-31"))
        assert result == {"date_beyond_scheduling_window": True, "escalation_required": True}
        completion.complete.assert_not_called()


# ── Stage B ──────────────────────────────────────────────────────────


class TestOfferTools:
    def test_executes_calls_with_verbatim_args(self, deps, scheduler, slots):
        node = make_offer_options_tools_node(deps)
        state = base_state(messages=[_tool_call_message({"preferred_provider": "Sarah"})])
        result = node(state)
        scheduler.get_availability.assert_called_once_with(preferred_date=None, preferred_provider="Sarah")
        tool_message = result["messages"][0]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.tool_call_id == "call_1"
        assert tool_message.content == slots_to_json(slots)

    def test_backend_failure_becomes_error_content(self, deps, scheduler):
        scheduler.get_availability.side_effect = CalendarError("calendar offline")
        node = make_offer_options_tools_node(deps)
        result = node(base_state(messages=[_tool_call_message()]))
        assert result["messages"][0].content == TOOL_ERROR_CONTENT

    def test_unknown_tool_is_reported(self, deps, scheduler):
        node = make_offer_options_tools_node(deps)
        message = AIMessage(content="", id="a1", tool_calls=[{"id": "c9", "name": "book_now", "args": {}}])
        result = node(base_state(messages=[message]))
        assert result["messages"][0].content.startswith("Error: unknown tool")
        scheduler.get_availability.assert_not_called()


# ── Stage C ──────────────────────────────────────────────────────────


def _final_state(content):
    return base_state(
        messages=[_tool_call_message(), ToolMessage(content=content, tool_call_id="call_1", id="t1")],
    )


class TestOfferFinal:
    def test_offers_slots_and_suspends(self, deps, slots):
        node = make_offer_options_final_node(deps)
        result = node(_final_state(slots_to_json(slots)))
        pending = result["pending_interrupt"]
        assert pending.kind is InterruptKind.SELECT_TIME
        assert pending.slots == slots
        assert pending.resume_node == CONFIRM_TIME
        assert result["available_slots"] == slots
        assert result["ui_phase"] is UiPhase.SELECTING_TIME
        assert result["escalation_required"] is False
        message = result["messages"][0]
        assert message.content == SLOTS_PRESENTED_MESSAGE
        assert [s["id"] for s in message.additional_kwargs["slots"]] == ["s1", "s2", "s3"]

    def test_caps_offered_slots(self, deps):
        many = make_slots(12)
        node = make_offer_options_final_node(deps)
        result = node(_final_state(slots_to_json(many)))
        assert len(result["available_slots"]) == 9
        assert len(result["pending_interrupt"].slots) == 9

    def test_empty_result_escalates(self, deps):
        node = make_offer_options_final_node(deps)
        result = node(_final_state("[]"))
        assert result["escalation_required"] is True
        assert result["slots_unacceptable"] is True
        assert result["available_slots"] == []
        assert result["messages"][0].content == NO_SLOTS_MESSAGE
        assert "pending_interrupt" not in result

    def test_error_content_escalates(self, deps):
        node = make_offer_options_final_node(deps)
        result = node(_final_state(TOOL_ERROR_CONTENT))
        assert result["escalation_required"] is True
        assert result["messages"][0].content == AVAILABILITY_ERROR_MESSAGE

    def test_no_tool_results_escalates(self, deps):
        node = make_offer_options_final_node(deps)
        result = node(base_state(messages=[AIMessage(content="I could not decide", id="a1")]))
        assert result["escalation_required"] is True

    def test_only_the_latest_tool_results_count(self, deps, slots):
        stale = [
            _tool_call_message(call_id="old"),
            ToolMessage(content=slots_to_json(make_slots(1, provider="Mike")), tool_call_id="old", id="t0"),
            AIMessage(content="ack", id="a2"),
        ]
        state = base_state(messages=[*stale, ToolMessage(content=slots_to_json(slots), tool_call_id="call_1", id="t1")])
        result = make_offer_options_final_node(deps)(state)
        assert [s.provider for s in result["available_slots"]] == ["Sarah"] * 3

    def test_beyond_window_escalates_silently(self, deps):
        node = make_offer_options_final_node(deps)
        result = node(base_state(date_beyond_scheduling_window=True))
        assert result["escalation_required"] is True
        assert "messages" not in result


class TestModelToolCallsAreFollowed:
    def test_model_chosen_args_reach_the_backend(self, deps, completion, scheduler):
        completion.complete.side_effect = None
        completion.complete.return_value = Completion(
            tool_calls=[ToolCall(id="call_7", name="get_availability", args={"preferred_date": "2030-01-08"})],
        )
        agent_result = make_offer_options_agent_node(deps)(base_state())
        tools_result = make_offer_options_tools_node(deps)(base_state(messages=agent_result["messages"]))
        scheduler.get_availability.assert_called_once_with(preferred_date="2030-01-08", preferred_provider=None)
        assert tools_result["messages"][0].tool_call_id == "call_7"
