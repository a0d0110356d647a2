"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from wellness_agent.state import (
    ConversationState,
    InterruptPayload,
    ResumeResponse,
    TimeSlot,
    to_message_record,
)


class CreateThreadRequest(BaseModel):
    """Open a thread; the assistant greets the user."""

    thread_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Client-chosen thread id; generated when omitted",
    )
    user_key: str | None = Field(
        default=None,
        max_length=200,
        description="Stable user identifier passed to staff on escalation",
    )


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    thread_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Thread identifier for conversation continuity",
    )
    user_key: str | None = Field(default=None, max_length=200)
    existing_event_id: str | None = Field(
        default=None,
        max_length=200,
        description="Appointment being moved, when the user wants to reschedule",
    )


class ResumeRequest(BaseModel):
    """The user's answer to the thread's pending question."""

    thread_id: str = Field(..., min_length=1, max_length=100)
    response: ResumeResponse


class InterruptView(BaseModel):
    """The pending question as clients see it; the resume target stays internal."""

    kind: str
    slots: list[TimeSlot] = Field(default_factory=list)
    selected_slot_id: str | None = None
    reason: str | None = None
    requires_user_action: bool = True

    @classmethod
    def from_payload(cls, payload: InterruptPayload) -> InterruptView:
        return cls(
            kind=payload.kind.value,
            slots=list(payload.slots),
            selected_slot_id=payload.selected_slot_id,
            reason=payload.reason,
            requires_user_action=payload.requires_user_action,
        )


class MessageView(BaseModel):
    id: str | None = None
    role: str
    text: str
    created_at: str | None = None
    citations: list[str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TurnResponse(BaseModel):
    """Thread state after a run, shaped for the client."""

    thread_id: str
    disposition: str = Field(..., description="ended, suspended or error")
    ui_phase: str
    messages: list[MessageView]
    pending_interrupt: InterruptView | None = None
    available_slots: list[TimeSlot] = Field(default_factory=list)
    user_escalated: bool = False

    @classmethod
    def from_state(cls, state: ConversationState, disposition: str) -> TurnResponse:
        """Build the response, leaving out tool traffic the user never sees."""
        views = []
        for message in state.get("messages") or []:
            record = to_message_record(message)
            if record["role"] == "tool" or not record["text"]:
                continue
            views.append(
                MessageView(
                    id=record["id"],
                    role=record["role"],
                    text=record["text"],
                    created_at=record["created_at"],
                    citations=record["citations"],
                    metadata=record["metadata"],
                )
            )
        ui_phase = state.get("ui_phase")
        pending = state.get("pending_interrupt")
        return cls(
            thread_id=state["thread_id"],
            disposition=disposition,
            ui_phase=getattr(ui_phase, "value", ui_phase),
            messages=views,
            pending_interrupt=InterruptView.from_payload(pending) if pending is not None else None,
            available_slots=list(state.get("available_slots") or []),
            user_escalated=bool(state.get("user_escalated")),
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "wellness-agent"
