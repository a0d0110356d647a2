"""Conversation engine: drives graph runs and the interrupt/resume protocol.

A *run* starts at a designated node and proceeds until the graph ends,
either quiescent (``ended``) or parked on a question to the user
(``suspended``).  Every intermediate state is written to the thread store,
so a crash mid-run loses at most the node that was executing.

Runs on the same thread are serialized with a per-thread lock; runs on
different threads are independent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from langgraph.errors import GraphRecursionError

from wellness_agent.agent import build_default_deps, create_wellness_graph
from wellness_agent.config import THREAD_STORE_DIR
from wellness_agent.deps import AgentDeps
from wellness_agent.exceptions import (
    EngineInvariantError,
    InterruptKindMismatchError,
    NoPendingInterruptError,
    ThreadNotFoundError,
)
from wellness_agent.routing import INFER_INTENT
from wellness_agent.services.metrics import metrics
from wellness_agent.state import (
    ConversationState,
    ConfirmTimeResponse,
    ResumeResponse,
    SelectTimeResponse,
    UiPhase,
    initial_state,
    summarize_state,
    user_message,
)
from wellness_agent.thread_store import KeyedLocks, ThreadStore, build_thread_store

logger = logging.getLogger(__name__)


class Disposition(str, Enum):
    ENDED = "ended"
    SUSPENDED = "suspended"
    ERROR = "error"


@dataclass
class TurnResult:
    """Outcome of one run: how it stopped and the state it left behind."""

    thread_id: str
    disposition: Disposition
    state: ConversationState
    error: str | None = None


def disposition_of(state: ConversationState) -> Disposition:
    return Disposition.SUSPENDED if state.get("pending_interrupt") is not None else Disposition.ENDED


class TurnStream:
    """Lazy, single-use sequence of state snapshots for one run.

    Iterate it to drive the run; ``result`` is set once the sequence is
    exhausted.  Nothing executes, and nothing is written to the thread
    store, until the first snapshot is requested.  A consumer that stops
    early must call :meth:`close` to release the thread.
    """

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        self.result: TurnResult | None = None
        self._snapshots: Iterator[ConversationState] = iter(())

    def __iter__(self) -> TurnStream:
        return self

    def __next__(self) -> ConversationState:
        return next(self._snapshots)

    def close(self) -> None:
        """Abandon the run; the last persisted snapshot stays in the store."""
        close = getattr(self._snapshots, "close", None)
        if close is not None:
            close()


class ConversationEngine:
    """Entry point for callers: start turns, answer questions, read state."""

    def __init__(self, deps: AgentDeps, store: ThreadStore, graph=None) -> None:
        self._deps = deps
        self._store = store
        self._graph = graph if graph is not None else create_wellness_graph(deps)
        self._max_hops = deps.settings.max_node_hops
        self._locks = KeyedLocks()

    # ── Public API ────────────────────────────────────────────────────

    def start_turn(
        self,
        thread_id: str,
        utterance: str,
        *,
        user_key: str | None = None,
        existing_event_id: str | None = None,
    ) -> TurnResult:
        """Process one user utterance to completion."""
        stream = self.stream_turn(
            thread_id, utterance, user_key=user_key, existing_event_id=existing_event_id,
        )
        return self._drain(stream)

    def resume_turn(self, thread_id: str, response: ResumeResponse) -> TurnResult:
        """Answer the thread's pending question and run to completion.

        Raises a ``ProtocolError`` (and leaves the state untouched) when the
        thread is unknown, has no pending question, or the answer is of the
        wrong kind.
        """
        return self._drain(self.stream_resume(thread_id, response))

    def stream_turn(
        self,
        thread_id: str,
        utterance: str,
        *,
        user_key: str | None = None,
        existing_event_id: str | None = None,
    ) -> TurnStream:
        def prepare() -> tuple[ConversationState, str]:
            return self._begin_turn(thread_id, utterance, user_key, existing_event_id), INFER_INTENT

        return self._stream(thread_id, prepare)

    def stream_resume(self, thread_id: str, response: ResumeResponse) -> TurnStream:
        """Validate the answer now; it is applied when the run starts on iteration."""
        with self._locks.hold(thread_id):
            self._check_resume(thread_id, response)
        return self._stream(thread_id, lambda: self._apply_resume(thread_id, response))

    def get_snapshot(self, thread_id: str) -> ConversationState:
        state = self._store.get(thread_id)
        if state is None:
            raise ThreadNotFoundError(thread_id)
        return state

    # ── Turn preparation ──────────────────────────────────────────────

    def _begin_turn(
        self,
        thread_id: str,
        utterance: str,
        user_key: str | None,
        existing_event_id: str | None,
    ) -> ConversationState:
        state = self._store.get(thread_id) or initial_state(thread_id, user_key)

        text = (utterance or "").strip()
        if text:
            if state.get("pending_interrupt") is not None:
                # A new utterance supersedes the unanswered question.
                logger.info(
                    "Thread %s: new utterance supersedes pending %s",
                    thread_id, state["pending_interrupt"].kind.value,
                )
                state["pending_interrupt"] = None
                state["selected_slot_id"] = None
                state["time_confirmed"] = None
                state["ui_phase"] = UiPhase.CHATTING
            state["messages"] = [*state["messages"], user_message(text)]
        state["user_query"] = text
        if existing_event_id:
            state["existing_event_id"] = existing_event_id

        self._store.set(thread_id, state)
        return state

    def _check_resume(self, thread_id: str, response: ResumeResponse) -> ConversationState:
        """Return the stored state if ``response`` answers its pending question."""
        state = self._store.get(thread_id)
        if state is None:
            raise ThreadNotFoundError(thread_id)

        pending = state.get("pending_interrupt")
        if pending is None:
            raise NoPendingInterruptError(thread_id)
        if response.kind != pending.kind.value:
            raise InterruptKindMismatchError(pending.kind.value, response.kind)
        return state

    def _apply_resume(self, thread_id: str, response: ResumeResponse) -> tuple[ConversationState, str]:
        state = self._check_resume(thread_id, response)
        pending = state["pending_interrupt"]

        if isinstance(response, SelectTimeResponse):
            state["selected_slot_id"] = response.slot_id
            state["time_confirmed"] = None
        elif isinstance(response, ConfirmTimeResponse):
            state["time_confirmed"] = response.confirm

        logger.info("Thread %s: resuming %s at %s", thread_id, response.kind, pending.resume_node)
        state["pending_interrupt"] = None
        self._store.set(thread_id, state)
        return state, pending.resume_node

    # ── Run loop ──────────────────────────────────────────────────────

    def _stream(self, thread_id: str, prepare: Callable[[], tuple[ConversationState, str]]) -> TurnStream:
        stream = TurnStream(thread_id)
        stream._snapshots = self._run(stream, thread_id, prepare)
        return stream

    def _run(
        self,
        stream: TurnStream,
        thread_id: str,
        prepare: Callable[[], tuple[ConversationState, str]],
    ) -> Iterator[ConversationState]:
        error: str | None = None

        with self._locks.hold(thread_id):
            # A resume is validated again against the state the run starts from.
            state, entry_node = prepare()
            last = state
            try:
                chunks = self._graph.stream(
                    {**state, "entry_node": entry_node},
                    config={"recursion_limit": self._max_hops},
                    stream_mode="values",
                )
                for chunk in chunks:
                    snapshot: ConversationState = {**initial_state(thread_id), **chunk}
                    self._store.set(thread_id, snapshot)
                    last = snapshot
                    yield snapshot
            except GraphRecursionError:
                logger.error(
                    "Thread %s exceeded %d node hops: %s",
                    thread_id, self._max_hops, summarize_state(last),
                )
                error = f"Run exceeded {self._max_hops} node hops"
            except EngineInvariantError as exc:
                logger.error("Thread %s hit an engine invariant: %s (%s)", thread_id, exc, summarize_state(last))
                error = str(exc)
            except Exception as exc:
                logger.exception("Thread %s run failed: %s", thread_id, summarize_state(last))
                error = f"{type(exc).__name__}: {exc}"

        if error is not None:
            stream.result = TurnResult(thread_id, Disposition.ERROR, last, error)
        else:
            stream.result = TurnResult(thread_id, disposition_of(last), last)
            logger.info("Thread %s run %s", thread_id, stream.result.disposition.value)
        metrics.record_run(stream.result.disposition.value)

    @staticmethod
    def _drain(stream: TurnStream) -> TurnResult:
        for _ in stream:
            pass
        return stream.result


def create_conversation_engine(deps: AgentDeps | None = None, store: ThreadStore | None = None) -> ConversationEngine:
    """Build an engine with the production collaborators and configured store."""
    return ConversationEngine(
        deps or build_default_deps(),
        store or build_thread_store(THREAD_STORE_DIR),
    )
