"""Conditional edges for the conversation graph.

Every router is a pure function of the state.  The model never chooses the
next node: the offer agent's tool calls are interpreted here as a plain
"were any tool calls issued" check.

Routers that follow a node able to raise an interrupt check
``pending_interrupt`` first; a pending question always ends the run so the
engine can report ``suspended``.
"""

from __future__ import annotations

import logging

from langchain_core.messages import AIMessage
from langgraph.graph import END

from wellness_agent.exceptions import UnroutableStateError
from wellness_agent.state import ConversationState, Intent

logger = logging.getLogger(__name__)

# ── Node names ───────────────────────────────────────────────────────

INFER_INTENT = "infer_intent"
POLICY_QUESTION = "policy_question"
OFFER_OPTIONS_AGENT = "offer_options_agent"
OFFER_OPTIONS_TOOLS = "offer_options_tools"
OFFER_OPTIONS_FINAL = "offer_options_final"
CONFIRM_TIME = "confirm_time"
NOTIFY_USER = "notify_user"
ESCALATE_HUMAN = "escalate_human"

ALL_NODES = (
    INFER_INTENT,
    POLICY_QUESTION,
    OFFER_OPTIONS_AGENT,
    OFFER_OPTIONS_TOOLS,
    OFFER_OPTIONS_FINAL,
    CONFIRM_TIME,
    NOTIFY_USER,
    ESCALATE_HUMAN,
)


def route_entry(state: ConversationState) -> str:
    """Pick the first node of a run: the intent node or a resume target."""
    entry = state.get("entry_node") or INFER_INTENT
    if entry not in ALL_NODES:
        raise UnroutableStateError("__start__", f"unknown entry node {entry!r}")
    return entry


def route_after_infer_intent(state: ConversationState) -> str:
    """Policy or scheduling branch, or end the run when there is nothing to do.

    An empty ``user_query`` is the designed fixed point of the graph's
    cycles (notify/escalate/policy all loop back here).
    """
    if not (state.get("user_query") or "").strip():
        logger.info("No user query present, ending current execution")
        return END

    if state.get("user_escalated"):
        logger.info("User has previously escalated, routing to policy question")
        return POLICY_QUESTION

    if state.get("intent") == Intent.SCHEDULING:
        logger.info("User intent is scheduling, routing to offer options agent")
        return OFFER_OPTIONS_AGENT

    logger.info("User intent is policy or unknown, routing to policy question")
    return POLICY_QUESTION


def route_after_offer_agent(state: ConversationState) -> str:
    """Execute tools only when the agent actually issued tool calls."""
    messages = state.get("messages") or []
    last = messages[-1] if messages else None
    if isinstance(last, AIMessage) and last.tool_calls:
        logger.info("Agent produced %d tool call(s), routing to tools", len(last.tool_calls))
        return OFFER_OPTIONS_TOOLS
    logger.info("No tool calls issued, routing directly to final processing")
    return OFFER_OPTIONS_FINAL


def route_after_offer_final(state: ConversationState) -> str:
    if state.get("pending_interrupt") is not None:
        return END
    if state.get("escalation_required"):
        logger.info("No usable slots, routing to escalation")
        return ESCALATE_HUMAN
    return CONFIRM_TIME


def route_after_confirm_time(state: ConversationState) -> str:
    """Confirmation outcomes: wait, re-offer, escalate or notify.

    ``escalation_required`` after a plain rejection means "show me different
    slots"; combined with ``user_escalated`` it means the user asked for a
    human ("none of these work").
    """
    if state.get("pending_interrupt") is not None:
        return END

    if state.get("escalation_required"):
        if state.get("user_escalated"):
            logger.info("User asked for a human, routing to escalation")
            return ESCALATE_HUMAN
        logger.info("User rejected the offered time, going back to offer options agent")
        return OFFER_OPTIONS_AGENT

    if state.get("time_confirmed"):
        logger.info("Time confirmed, proceeding to notify user")
        return NOTIFY_USER

    raise UnroutableStateError(
        CONFIRM_TIME,
        "no pending question, no escalation and no confirmed time",
    )
