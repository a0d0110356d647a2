"""LangGraph state machine for the wellness clinic assistant.

Architecture:
  The graph is a ``StateGraph`` over :class:`ConversationState` with eight
  nodes:

    1. **infer_intent**        — classifies the utterance (policy/scheduling)
    2. **policy_question**     — retrieval → draft → judge → conservative rewrite
    3. **offer_options_agent** — model picks the availability call
    4. **offer_options_tools** — executes those calls verbatim
    5. **offer_options_final** — parses and caps the slots, asks select-time
    6. **confirm_time**        — select/confirm/reschedule state machine
    7. **notify_user**         — books the slot and resets scheduling state
    8. **escalate_human**      — pages staff and closes scheduling for good

  Routing:
    START → (entry_node)        → infer_intent | confirm_time
    infer_intent → (no query?)  → END
                 → (scheduling?) → offer_options_agent
                 → (otherwise)  → policy_question → infer_intent
    offer_options_agent → (tool calls?) → offer_options_tools → offer_options_final
                        → (none?)       → offer_options_final
    offer_options_final → (question?) → END
                        → (no slots?)  → escalate_human → infer_intent
    confirm_time → (question?)   → END
                 → (rejected?)   → offer_options_agent
                 → (escalated?)  → escalate_human
                 → (confirmed?)  → notify_user → infer_intent

  Suspension:
    A node that needs the user's answer stores an ``InterruptPayload`` in
    ``pending_interrupt`` and the next router returns END.  The run is then
    persisted by :class:`~wellness_agent.engine.ConversationEngine`, which
    re-enters the graph at ``resume_node`` when the answer arrives.  No
    LangGraph checkpointer is involved, so a suspended thread survives a
    process restart.
"""

from __future__ import annotations

import logging

from langgraph.graph import END, START, StateGraph

from wellness_agent.config import FAST_MODEL_NAME, MODEL_NAME, EngineSettings
from wellness_agent.deps import AgentDeps
from wellness_agent.nodes.confirm import make_confirm_time_node
from wellness_agent.nodes.escalate import make_escalate_human_node
from wellness_agent.nodes.intent import make_infer_intent_node
from wellness_agent.nodes.notify import make_notify_user_node
from wellness_agent.nodes.offer import (
    make_offer_options_agent_node,
    make_offer_options_final_node,
    make_offer_options_tools_node,
)
from wellness_agent.nodes.policy import make_policy_question_node
from wellness_agent.routing import (
    ALL_NODES,
    CONFIRM_TIME,
    ESCALATE_HUMAN,
    INFER_INTENT,
    NOTIFY_USER,
    OFFER_OPTIONS_AGENT,
    OFFER_OPTIONS_FINAL,
    OFFER_OPTIONS_TOOLS,
    POLICY_QUESTION,
    route_after_confirm_time,
    route_after_infer_intent,
    route_after_offer_agent,
    route_after_offer_final,
    route_entry,
)
from wellness_agent.services.calendar import StubCalendarService
from wellness_agent.services.escalation import LoggingEscalationPager
from wellness_agent.services.llm import AnthropicCompletionModel, AnthropicIntentClassifier
from wellness_agent.services.retrieval import KeywordPolicyRetriever
from wellness_agent.state import ConversationState

logger = logging.getLogger(__name__)


# ── Graph assembly ───────────────────────────────────────────────────


def create_wellness_graph(deps: AgentDeps):
    """Build and compile the conversation graph around ``deps``.

    Returns a compiled graph that the engine drives with:
        graph.stream(
            {**state, "entry_node": "infer_intent"},
            config={"recursion_limit": settings.max_node_hops},
            stream_mode="values",
        )
    """
    graph = StateGraph(ConversationState)

    graph.add_node(INFER_INTENT, make_infer_intent_node(deps))
    graph.add_node(POLICY_QUESTION, make_policy_question_node(deps))
    graph.add_node(OFFER_OPTIONS_AGENT, make_offer_options_agent_node(deps))
    graph.add_node(OFFER_OPTIONS_TOOLS, make_offer_options_tools_node(deps))
    graph.add_node(OFFER_OPTIONS_FINAL, make_offer_options_final_node(deps))
    graph.add_node(CONFIRM_TIME, make_confirm_time_node(deps))
    graph.add_node(NOTIFY_USER, make_notify_user_node(deps))
    graph.add_node(ESCALATE_HUMAN, make_escalate_human_node(deps))

    # Entry: a new utterance starts at intent, a resume at its target node
    graph.add_conditional_edges(START, route_entry, {name: name for name in ALL_NODES})

    graph.add_conditional_edges(
        INFER_INTENT,
        route_after_infer_intent,
        {POLICY_QUESTION: POLICY_QUESTION, OFFER_OPTIONS_AGENT: OFFER_OPTIONS_AGENT, END: END},
    )
    graph.add_edge(POLICY_QUESTION, INFER_INTENT)

    # Slot-offer pipeline
    graph.add_conditional_edges(
        OFFER_OPTIONS_AGENT,
        route_after_offer_agent,
        {OFFER_OPTIONS_TOOLS: OFFER_OPTIONS_TOOLS, OFFER_OPTIONS_FINAL: OFFER_OPTIONS_FINAL},
    )
    graph.add_edge(OFFER_OPTIONS_TOOLS, OFFER_OPTIONS_FINAL)
    graph.add_conditional_edges(
        OFFER_OPTIONS_FINAL,
        route_after_offer_final,
        {ESCALATE_HUMAN: ESCALATE_HUMAN, CONFIRM_TIME: CONFIRM_TIME, END: END},
    )

    graph.add_conditional_edges(
        CONFIRM_TIME,
        route_after_confirm_time,
        {
            OFFER_OPTIONS_AGENT: OFFER_OPTIONS_AGENT,
            ESCALATE_HUMAN: ESCALATE_HUMAN,
            NOTIFY_USER: NOTIFY_USER,
            END: END,
        },
    )

    # Terminal branches loop back to intent, which ends on the empty query
    graph.add_edge(NOTIFY_USER, INFER_INTENT)
    graph.add_edge(ESCALATE_HUMAN, INFER_INTENT)

    compiled = graph.compile()
    logger.debug("Wellness graph compiled with %d nodes", len(ALL_NODES))
    return compiled


# ── Default collaborators ───────────────────────────────────────────


def build_default_deps(settings: EngineSettings | None = None) -> AgentDeps:
    """Wire the production adapters: Anthropic models, keyword retriever,
    in-process calendar and the logging escalation pager.
    """
    return AgentDeps(
        classifier=AnthropicIntentClassifier(),
        completion=AnthropicCompletionModel(MODEL_NAME, operation="llm_invoke"),
        judge=AnthropicCompletionModel(FAST_MODEL_NAME, operation="judge_invoke"),
        retriever=KeywordPolicyRetriever(),
        scheduler=StubCalendarService(),
        pager=LoggingEscalationPager(),
        settings=settings or EngineSettings(),
    )
