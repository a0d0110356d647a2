"""Tests for the state schema: reducers, value objects and serialization."""

from __future__ import annotations

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langgraph.graph import END, START, StateGraph
from pydantic import TypeAdapter, ValidationError

from conftest import base_state, make_slots
from wellness_agent.state import (
    ConfirmTimeResponse,
    ConversationState,
    Intent,
    InterruptKind,
    InterruptPayload,
    ResumeResponse,
    SelectTimeResponse,
    TimeSlot,
    UiPhase,
    append_messages,
    assistant_message,
    deserialize_state,
    find_slot,
    initial_state,
    replace_value,
    serialize_state,
    sticky_flag,
    summarize_state,
    to_message_record,
)


# ── Reducers ─────────────────────────────────────────────────────────


class TestAppendMessages:
    def test_appends_in_order(self):
        first = assistant_message("one")
        second = assistant_message("two")
        third = assistant_message("three")
        merged = append_messages([first], [second, third])
        assert [m.content for m in merged] == ["one", "two", "three"]

    def test_does_not_mutate_left(self):
        left = [assistant_message("one")]
        append_messages(left, [assistant_message("two")])
        assert len(left) == 1

    def test_duplicate_id_is_not_rewritten(self):
        original = AIMessage(content="original", id="m1")
        replay = AIMessage(content="rewritten", id="m1")
        merged = append_messages([original], [replay])
        assert len(merged) == 1
        assert merged[0].content == "original"

    def test_assigns_missing_ids(self):
        merged = append_messages([], [HumanMessage(content="hi")])
        assert merged[0].id

    def test_accepts_single_message_and_none(self):
        assert len(append_messages([], assistant_message("x"))) == 1
        assert append_messages([assistant_message("x")], None)[0].content == "x"


class TestReplaceAndStickyReducers:
    def test_replace_value_takes_empty_list(self, slots):
        assert replace_value(slots, []) == []

    def test_replace_value_takes_newest(self, slots):
        newer = make_slots(1, provider="Mike")
        assert replace_value(slots, newer) == newer

    @pytest.mark.parametrize(
        ("left", "right", "expected"),
        [(False, False, False), (False, True, True), (True, False, True), (True, None, True)],
    )
    def test_sticky_flag_never_clears(self, left, right, expected):
        assert sticky_flag(left, right) is expected


class TestScalarPatchesThroughGraph:
    PATCH = {
        "ui_phase": UiPhase.SELECTING_TIME,
        "selected_slot_id": "s2",
        "escalation_required": True,
    }

    def _apply(self, times: int, **extra):
        builder = StateGraph(ConversationState)
        previous = START
        for i in range(times):
            name = f"apply_{i}"
            builder.add_node(name, lambda state: {**self.PATCH, **extra})
            builder.add_edge(previous, name)
            previous = name
        builder.add_edge(previous, END)
        return builder.compile().invoke(initial_state("t-1"))

    def test_same_patch_twice_equals_once(self):
        assert self._apply(2) == self._apply(1)
        assert self._apply(1)["selected_slot_id"] == "s2"

    def test_slot_list_patch_twice_equals_once(self, slots):
        assert self._apply(2, available_slots=slots) == self._apply(1, available_slots=slots)


# ── Value objects ────────────────────────────────────────────────────


class TestTimeSlot:
    def test_accepts_alternate_field_names(self):
        slot = TimeSlot.model_validate({
            "id": "a",
            "startISO": "2030-01-07T09:00:00+00:00",
            "endISO": "2030-01-07T10:00:00+00:00",
        })
        assert slot.start.hour == 9

    def test_rejects_naive_datetimes(self):
        with pytest.raises(ValidationError):
            TimeSlot.model_validate({
                "id": "a",
                "start": "2030-01-07T09:00:00",
                "end": "2030-01-07T10:00:00",
            })

    def test_rejects_end_before_start(self):
        with pytest.raises(ValidationError):
            TimeSlot.model_validate({
                "id": "a",
                "start": "2030-01-07T10:00:00+00:00",
                "end": "2030-01-07T09:00:00+00:00",
            })

    def test_find_slot(self, slots):
        assert find_slot(slots, "s2") is slots[1]
        assert find_slot(slots, "missing") is None
        assert find_slot([], "s1") is None


class TestResumeResponse:
    def test_discriminates_on_kind(self):
        adapter = TypeAdapter(ResumeResponse)
        assert isinstance(adapter.validate_python({"kind": "select-time", "slot_id": "s1"}), SelectTimeResponse)
        assert isinstance(adapter.validate_python({"kind": "confirm-time", "confirm": False}), ConfirmTimeResponse)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(ResumeResponse).validate_python({"kind": "start-suggest"})


# ── Serialization ────────────────────────────────────────────────────


class TestSerialization:
    def test_suspended_state_survives_json(self, slots):
        tool_call = {"id": "call_1", "name": "get_availability", "args": {}}
        state = base_state(
            messages=[
                HumanMessage(content="book me", id="u1"),
                AIMessage(content="", id="a1", tool_calls=[tool_call]),
                ToolMessage(content="[]", tool_call_id="call_1", id="t1"),
                assistant_message("pick one", slots=[s.model_dump(mode="json") for s in slots]),
            ],
            ui_phase=UiPhase.SELECTING_TIME,
            intent=Intent.SCHEDULING,
            available_slots=slots,
            pending_interrupt=InterruptPayload(
                kind=InterruptKind.SELECT_TIME, slots=slots, resume_node="confirm_time",
            ),
            user_escalated=True,
        )

        data = json.loads(json.dumps(serialize_state(state)))
        restored = deserialize_state(data)

        assert restored["ui_phase"] is UiPhase.SELECTING_TIME
        assert restored["intent"] is Intent.SCHEDULING
        assert restored["available_slots"] == slots
        assert restored["pending_interrupt"].kind is InterruptKind.SELECT_TIME
        assert restored["pending_interrupt"].resume_node == "confirm_time"
        assert [m.id for m in restored["messages"]] == [m.id for m in state["messages"]]
        assert restored["messages"][1].tool_calls[0]["id"] == "call_1"
        assert restored["messages"][2].tool_call_id == "call_1"
        assert restored["user_escalated"] is True

    def test_missing_keys_take_defaults(self):
        restored = deserialize_state({"thread_id": "t-9"})
        assert restored["messages"] == []
        assert restored["user_key"] == "t-9"
        assert restored["pending_interrupt"] is None


class TestMessageRecords:
    def test_record_exposes_citations_and_metadata(self):
        message = assistant_message("answer", citations=["Page 1"], validation_note="careful")
        record = to_message_record(message)
        assert record["role"] == "assistant"
        assert record["text"] == "answer"
        assert record["citations"] == ["Page 1"]
        assert record["metadata"] == {"validation_note": "careful"}
        assert record["created_at"]

    def test_summary_has_no_message_bodies(self, slots):
        state = base_state(messages=[HumanMessage(content="my secret health question", id="u1")], available_slots=slots)
        summary = summarize_state(state)
        assert summary["message_count"] == 1
        assert summary["slot_ids"] == ["s1", "s2", "s3"]
        assert "my secret health question" not in json.dumps(summary)
