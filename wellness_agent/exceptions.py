"""Exception hierarchy for the wellness clinic agent.

Three families cross different boundaries:

* **Collaborator errors** are raised by the LLM, retrieval, calendar and
  escalation adapters.  Nodes always catch them and degrade to a
  conversational message; they never reach the engine's caller.
* **Protocol errors** signal caller misuse (unknown thread, resume without a
  pending question, wrong resume kind).  They are the only errors the
  transport layer turns into 4xx responses.
* **Engine invariant errors** mean the graph itself is broken (no edge
  applies).  The engine converts them into the ``error`` disposition.
"""

from __future__ import annotations


class WellnessAgentError(Exception):
    """Base class for every error raised by this package."""


# ── Collaborator errors ──────────────────────────────────────────────


class CollaboratorError(WellnessAgentError):
    """An external collaborator (LLM, retrieval, calendar, pager) failed."""


class ClassificationError(CollaboratorError):
    """Intent classification timed out or returned malformed output."""


class CompletionError(CollaboratorError):
    """A completion call failed."""


class RetrievalError(CollaboratorError):
    """The policy retriever failed."""


class CalendarError(CollaboratorError):
    """The scheduling backend failed."""


class EscalationError(CollaboratorError):
    """Paging a human failed."""


# ── Protocol errors ──────────────────────────────────────────────────


class ProtocolError(WellnessAgentError):
    """The caller used the engine incorrectly; state is left unchanged."""


class ThreadNotFoundError(ProtocolError):
    """No state has been stored for the requested thread."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread {thread_id!r} not found")


class NoPendingInterruptError(ProtocolError):
    """A resume was requested but the thread is not waiting on the user."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread {thread_id!r} has no pending question to resume")


class InterruptKindMismatchError(ProtocolError):
    """The resume payload answers a different question than the pending one."""

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Resume payload of kind {received!r} does not match pending interrupt {expected!r}"
        )


# ── Engine invariant errors ──────────────────────────────────────────


class EngineInvariantError(WellnessAgentError):
    """The graph reached a state that should be impossible."""


class UnroutableStateError(EngineInvariantError):
    """A router found no outgoing edge for the current state."""

    def __init__(self, node: str, detail: str = ""):
        self.node = node
        message = f"No route out of node {node!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
