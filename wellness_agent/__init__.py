"""Wellness clinic assistant — a conversational agent for a university clinic.

Architecture Overview
=====================

The assistant is a **LangGraph** state machine driven by a small engine that
owns persistence and the interrupt/resume protocol:

1. **infer_intent** — classifies each utterance as a policy question or a
   scheduling request (Claude Haiku, structured output).
2. **policy_question** — answers from the clinic manual: retrieve, draft,
   have a second model judge the draft, and fall back to a conservative
   answer when the judge is unconvinced.  No sources means a fixed decline.
3. **offer_options_*** — the model issues an availability tool call, the
   call is executed verbatim, and the resulting slots are offered to the
   user as a ``select-time`` question.
4. **confirm_time** — turns the user's choice into a ``confirm-time``
   question, re-offers on rejection, reschedules existing bookings.
5. **notify_user** / **escalate_human** — book the slot, or page staff.

Key Design Decisions
--------------------
- **Deterministic routing**: every edge is a pure function of the state; the
  model only produces content and tool calls.
- **Suspension as data**: a pending question is a field on the state and
  the engine persists every intermediate state, so a conversation can be
  resumed in another process.
- **Injected collaborators**: the graph only sees the protocols in
  ``collaborators.py``; production adapters live in ``services/`` and tests
  use ``MagicMock`` doubles.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``wellness_agent/agent.py`` — StateGraph assembly and default collaborators
- ``wellness_agent/engine.py`` — runs, persistence, interrupt/resume
- ``wellness_agent/state.py`` — state schema, reducers, serialization
- ``wellness_agent/routing.py`` — node names and conditional edges
- ``wellness_agent/nodes/`` — one module per node (family)
- ``wellness_agent/services/`` — Anthropic, retrieval, calendar, pager, metrics
- ``wellness_agent/api/`` — FastAPI routes and Pydantic schemas
"""
