"""Contracts for the external collaborators the graph consumes.

The graph only depends on these protocols.  Production adapters live in
``wellness_agent.services``; tests substitute ``MagicMock`` doubles.

Every method may raise the matching ``CollaboratorError`` subclass from
``wellness_agent.exceptions``.  Nodes are responsible for catching them.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any, Literal, Protocol, runtime_checkable

from langchain_core.messages import BaseMessage
from langchain_core.tools import BaseTool
from pydantic import AwareDatetime, BaseModel, Field, field_validator

from wellness_agent.state import TimeSlot

# ── Result models ────────────────────────────────────────────────────


class IntentClassification(BaseModel):
    """Structured result of classifying one user utterance."""

    intent: Literal["policy", "scheduling", "unknown"] = Field(
        description=(
            "policy for questions about clinic rules and procedures, "
            "scheduling for booking/changing appointments, unknown otherwise"
        ),
    )
    confidence: float = Field(description="Confidence between 0 and 1")
    reason: str = Field(default="No reason provided", description="One short sentence")
    preferred_date: date | None = Field(
        default=None,
        description="Date the user asked for, if any (YYYY-MM-DD)",
    )
    preferred_provider: str | None = Field(
        default=None,
        description="Provider the user asked for by name, if any",
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            return 0.0


class ToolCall(BaseModel):
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Completion(BaseModel):
    """What a completion call produced: text, tool calls, or both."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class RetrievedChunk(BaseModel):
    content: str
    score: float = Field(ge=0.0, le=1.0)
    page_number: int
    source_ref: str = ""

    @property
    def citation(self) -> str:
        return self.source_ref or f"Page {self.page_number}"


class RescheduleResult(BaseModel):
    success: bool
    message: str


class AppointmentRecord(BaseModel):
    id: str
    start: AwareDatetime
    end: AwareDatetime
    provider: str | None = None
    attendee: str


class EscalationResult(BaseModel):
    success: bool
    escalation_id: str


# ── Protocols ────────────────────────────────────────────────────────


@runtime_checkable
class IntentClassifier(Protocol):
    def classify(self, user_query: str) -> IntentClassification: ...


@runtime_checkable
class CompletionModel(Protocol):
    def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> Completion: ...


@runtime_checkable
class PolicyRetriever(Protocol):
    def retrieve(self, query: str, k: int) -> list[RetrievedChunk]: ...


@runtime_checkable
class SchedulingBackend(Protocol):
    def get_availability(
        self,
        preferred_date: str | None = None,
        preferred_provider: str | None = None,
    ) -> list[TimeSlot]: ...

    def reschedule(
        self,
        event_id: str,
        new_start: str,
        new_end: str,
        reason: str | None = None,
    ) -> RescheduleResult: ...

    def create_appointment(
        self,
        start: str,
        end: str,
        provider: str | None,
        attendee: str,
    ) -> AppointmentRecord: ...


@runtime_checkable
class EscalationPager(Protocol):
    def escalate_to_human(self, user_key: str, reason: str) -> EscalationResult: ...
