"""Conversation state that flows through the graph.

One ``ConversationState`` exists per thread.  Nodes never mutate it in place;
they return partial updates that LangGraph merges with the reducer declared on
each field:

* ``messages`` — append-only (:func:`append_messages`).  A message that is
  already in the log is never rewritten or removed.
* ``available_slots`` — whole-value replace (:func:`replace_value`).  A later
  empty list legitimately clears the offer.
* ``user_escalated`` — sticky (:func:`sticky_flag`).  Once true it stays true
  for the life of the thread.
* everything else — last write wins (LangGraph's default channel).

The state must survive process boundaries between a suspension and its
resume, so :func:`serialize_state` / :func:`deserialize_state` convert it to
and from plain JSON-compatible data.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    messages_from_dict,
    messages_to_dict,
)
from pydantic import AliasChoices, AwareDatetime, BaseModel, ConfigDict, Field, model_validator
from typing_extensions import TypedDict

# Sentinel slot id meaning "none of these times work for me".
NONE_SLOT_ID = "none"


class UiPhase(str, Enum):
    """Which interaction surface the client should render."""

    CHATTING = "Chatting"
    SELECTING_TIME = "SelectingTime"
    CONFIRMING_TIME = "ConfirmingTime"
    ESCALATED = "Escalated"
    POLICY_QA = "PolicyQA"


class Intent(str, Enum):
    POLICY = "policy"
    SCHEDULING = "scheduling"
    UNKNOWN = "unknown"


class InterruptKind(str, Enum):
    SELECT_TIME = "select-time"
    CONFIRM_TIME = "confirm-time"
    # Reserved for a start-of-conversation suggestion widget; no node raises it yet.
    START_SUGGEST = "start-suggest"


# ── Value objects ────────────────────────────────────────────────────


class TimeSlot(BaseModel):
    """A bookable appointment window.

    ``start`` and ``end`` must carry a UTC offset.  The validation aliases
    accept the spellings different availability sources use.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    start: AwareDatetime = Field(
        validation_alias=AliasChoices("start", "startInstant", "startISO", "start_time"),
    )
    end: AwareDatetime = Field(
        validation_alias=AliasChoices("end", "endInstant", "endISO", "end_time"),
    )
    provider: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> TimeSlot:
        if self.end <= self.start:
            raise ValueError(f"Slot {self.id} ends before it starts")
        return self


class InterruptPayload(BaseModel):
    """An outstanding question to the user.

    Present on the state if and only if the run is parked waiting for the
    matching resume payload.  ``resume_node`` names the node the engine
    re-enters once the answer arrives.
    """

    model_config = ConfigDict(frozen=True)

    kind: InterruptKind
    slots: list[TimeSlot] = Field(default_factory=list)
    selected_slot_id: str | None = None
    reason: str | None = None
    requires_user_action: bool = True
    resume_node: str


class SelectTimeResponse(BaseModel):
    """The user picked a slot (or the ``"none"`` sentinel)."""

    kind: Literal["select-time"] = "select-time"
    slot_id: str = Field(min_length=1, max_length=200)


class ConfirmTimeResponse(BaseModel):
    """The user accepted or rejected the proposed slot."""

    kind: Literal["confirm-time"] = "confirm-time"
    confirm: bool


ResumeResponse = Annotated[
    Union[SelectTimeResponse, ConfirmTimeResponse],
    Field(discriminator="kind"),
]


# ── Reducers ─────────────────────────────────────────────────────────


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


def append_messages(
    left: list[AnyMessage] | None,
    right: list[AnyMessage] | AnyMessage | None,
) -> list[AnyMessage]:
    """Append ``right`` to the log.

    Messages without an id get one.  A message whose id is already logged is
    skipped, never replaced, so replaying an update cannot rewrite history.
    All messages of one update land together and in order.
    """
    merged = list(left or [])
    if right is None:
        return merged
    if not isinstance(right, list):
        right = [right]

    seen = {msg.id for msg in merged if msg.id}
    for msg in right:
        if msg.id is None:
            msg = msg.model_copy(update={"id": new_message_id()})
        if msg.id in seen:
            continue
        seen.add(msg.id)
        merged.append(msg)
    return merged


def replace_value(left: Any, right: Any) -> Any:
    """Whole-value replace; the newest write wins even when it is empty."""
    return list(right) if isinstance(right, list) else right


def sticky_flag(left: bool | None, right: bool | None) -> bool:
    """Logical OR: once set, the flag can never be cleared."""
    return bool(left) or bool(right)


# ── State schema ─────────────────────────────────────────────────────


class ConversationState(TypedDict):
    """The single source of truth for one conversation thread."""

    thread_id: str
    # Stable key passed to the human-escalation pager (defaults to thread_id).
    user_key: str
    messages: Annotated[list[AnyMessage], append_messages]
    ui_phase: UiPhase
    pending_interrupt: InterruptPayload | None
    user_query: str
    intent: Intent
    user_escalated: Annotated[bool, sticky_flag]

    # Scheduling sub-state
    preferred_date: str | None
    preferred_provider: str | None
    available_slots: Annotated[list[TimeSlot], replace_value]
    selected_slot_id: str | None
    existing_event_id: str | None
    # Answer to the last confirm-time question; None until one arrives.
    time_confirmed: bool | None

    # Short-lived routing flags, reset by the node that consumes them
    slots_unacceptable: bool
    date_beyond_scheduling_window: bool
    escalation_required: bool

    # Node the engine enters for this run (intent node or a resume target).
    entry_node: str


def initial_state(thread_id: str, user_key: str | None = None) -> ConversationState:
    """Return the default state for a brand-new thread."""
    return ConversationState(
        thread_id=thread_id,
        user_key=user_key or thread_id,
        messages=[],
        ui_phase=UiPhase.CHATTING,
        pending_interrupt=None,
        user_query="",
        intent=Intent.UNKNOWN,
        user_escalated=False,
        preferred_date=None,
        preferred_provider=None,
        available_slots=[],
        selected_slot_id=None,
        existing_event_id=None,
        time_confirmed=None,
        slots_unacceptable=False,
        date_beyond_scheduling_window=False,
        escalation_required=False,
        entry_node="",
    )


# ── Message helpers ──────────────────────────────────────────────────


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def assistant_message(text: str, **extra: Any) -> AIMessage:
    """Build an assistant message stamped with its creation time."""
    return AIMessage(
        content=text,
        id=new_message_id(),
        additional_kwargs={"at": utc_now_iso(), **extra},
    )


def user_message(text: str) -> HumanMessage:
    return HumanMessage(
        content=text,
        id=new_message_id(),
        additional_kwargs={"at": utc_now_iso()},
    )


def message_text(message: BaseMessage) -> str:
    """Flatten message content (plain string or a list of content blocks)."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "\n".join(parts)


_ROLE_BY_TYPE = {"human": "user", "ai": "assistant", "tool": "tool"}


def to_message_record(message: BaseMessage) -> dict[str, Any]:
    """Project a LangChain message onto the transport-facing record shape."""
    extras = dict(message.additional_kwargs or {})
    record: dict[str, Any] = {
        "id": message.id,
        "role": _ROLE_BY_TYPE.get(message.type, message.type),
        "text": message_text(message),
        "created_at": extras.pop("at", None),
        "citations": extras.pop("citations", None),
        "metadata": extras,
    }
    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        record["tool_calls"] = [
            {"id": call.get("id"), "name": call["name"], "args": call.get("args", {})}
            for call in tool_calls
        ]
    tool_call_id = getattr(message, "tool_call_id", None)
    if tool_call_id:
        record["tool_call_id"] = tool_call_id
    return record


def find_slot(slots: list[TimeSlot] | None, slot_id: str | None) -> TimeSlot | None:
    if not slots or not slot_id:
        return None
    return next((slot for slot in slots if slot.id == slot_id), None)


# ── Serialization ────────────────────────────────────────────────────


def serialize_state(state: ConversationState) -> dict[str, Any]:
    """Convert a state into JSON-compatible data (no live objects survive)."""
    data: dict[str, Any] = {}
    for key, value in state.items():
        if key == "messages":
            data[key] = messages_to_dict(value or [])
        elif key == "available_slots":
            data[key] = [slot.model_dump(mode="json") for slot in value or []]
        elif key == "pending_interrupt":
            data[key] = value.model_dump(mode="json") if value is not None else None
        elif isinstance(value, Enum):
            data[key] = value.value
        else:
            data[key] = value
    return data


def deserialize_state(data: dict[str, Any]) -> ConversationState:
    """Inverse of :func:`serialize_state`; missing keys take their defaults."""
    state = initial_state(data["thread_id"], data.get("user_key"))
    for key, value in data.items():
        if key not in state:
            continue
        if key == "messages":
            state["messages"] = messages_from_dict(value or [])
        elif key == "available_slots":
            state["available_slots"] = [TimeSlot.model_validate(item) for item in value or []]
        elif key == "pending_interrupt":
            state["pending_interrupt"] = (
                InterruptPayload.model_validate(value) if value is not None else None
            )
        elif key == "ui_phase":
            state["ui_phase"] = UiPhase(value)
        elif key == "intent":
            state["intent"] = Intent(value)
        else:
            state[key] = value
    return state


def summarize_state(state: ConversationState) -> dict[str, Any]:
    """A log-friendly view of the state that leaves out message bodies."""
    pending = state.get("pending_interrupt")
    return {
        "thread_id": state.get("thread_id"),
        "message_count": len(state.get("messages") or []),
        "ui_phase": getattr(state.get("ui_phase"), "value", state.get("ui_phase")),
        "intent": getattr(state.get("intent"), "value", state.get("intent")),
        "has_user_query": bool(state.get("user_query")),
        "pending_interrupt": pending.kind.value if pending else None,
        "slot_ids": [slot.id for slot in state.get("available_slots") or []],
        "selected_slot_id": state.get("selected_slot_id"),
        "user_escalated": state.get("user_escalated"),
        "escalation_required": state.get("escalation_required"),
        "slots_unacceptable": state.get("slots_unacceptable"),
        "date_beyond_scheduling_window": state.get("date_beyond_scheduling_window"),
    }
