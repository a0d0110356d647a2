"""Shared test fixtures for the wellness agent test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("METRICS_ENABLED", "false")


# ── Builders ─────────────────────────────────────────────────────────


def make_slots(count: int = 3, provider: str = "Sarah"):
    """Hourly slots on a fixed future Monday, ids s1..sN."""
    from wellness_agent.state import TimeSlot

    base = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)
    return [
        TimeSlot(
            id=f"s{i + 1}",
            start=base + timedelta(hours=i),
            end=base + timedelta(hours=i + 1),
            provider=provider,
        )
        for i in range(count)
    ]


def make_chunks(count: int = 2, score: float = 0.8):
    from wellness_agent.collaborators import RetrievedChunk

    return [
        RetrievedChunk(
            content=f"Cancellations need 24 hours notice (section {i + 1}).",
            score=score,
            page_number=i + 1,
            source_ref=f"POLICIES.md, section {i + 1}",
        )
        for i in range(count)
    ]


def classification(intent: str = "policy", confidence: float = 0.9, **extra):
    from wellness_agent.collaborators import IntentClassification

    return IntentClassification(intent=intent, confidence=confidence, reason="test", **extra)


def base_state(**overrides):
    from wellness_agent.state import initial_state

    state = initial_state("thread-1")
    state.update(overrides)
    return state


# ── Collaborator doubles ─────────────────────────────────────────────


@pytest.fixture
def slots():
    return make_slots(3)


@pytest.fixture
def classifier():
    mock = MagicMock()
    mock.classify.return_value = classification("policy")
    return mock


@pytest.fixture
def completion():
    """Completion double: a tool call when tools are offered, text otherwise."""
    from wellness_agent.collaborators import Completion, ToolCall

    def _complete(messages, tools=None):
        if tools:
            return Completion(
                tool_calls=[ToolCall(id="call_1", name="get_availability", args={})],
            )
        return Completion(text="Cancellations need 24 hours notice [Page 1].")

    mock = MagicMock()
    mock.complete.side_effect = _complete
    return mock


@pytest.fixture
def judge():
    from wellness_agent.collaborators import Completion

    mock = MagicMock()
    mock.complete.return_value = Completion(
        text='{"isValid": true, "reasoning": "Supported by context", "confidence": 0.9}',
    )
    return mock


@pytest.fixture
def retriever():
    mock = MagicMock()
    mock.retrieve.return_value = make_chunks(2)
    return mock


@pytest.fixture
def scheduler(slots):
    from wellness_agent.collaborators import AppointmentRecord, RescheduleResult

    mock = MagicMock()
    mock.get_availability.return_value = slots
    mock.create_appointment.side_effect = lambda start, end, provider, attendee: AppointmentRecord(
        id="evt_1", start=start, end=end, provider=provider, attendee=attendee,
    )
    mock.reschedule.return_value = RescheduleResult(success=True, message="ok")
    return mock


@pytest.fixture
def pager():
    from wellness_agent.collaborators import EscalationResult

    mock = MagicMock()
    mock.escalate_to_human.return_value = EscalationResult(success=True, escalation_id="esc_1")
    return mock


@pytest.fixture
def settings():
    from wellness_agent.config import EngineSettings

    return EngineSettings(
        retrieval_top_k=5,
        min_retrieval_score=0.0,
        validation_confidence_threshold=0.5,
        max_offered_slots=9,
        scheduling_window_days=14,
        max_node_hops=25,
    )


@pytest.fixture
def deps(classifier, completion, judge, retriever, scheduler, pager, settings):
    from wellness_agent.deps import AgentDeps

    return AgentDeps(
        classifier=classifier,
        completion=completion,
        judge=judge,
        retriever=retriever,
        scheduler=scheduler,
        pager=pager,
        settings=settings,
    )


@pytest.fixture
def store():
    from wellness_agent.thread_store import InMemoryThreadStore

    return InMemoryThreadStore()


@pytest.fixture
def engine(deps, store):
    from wellness_agent.engine import ConversationEngine

    return ConversationEngine(deps, store)
