"""Node: infer_intent — classifies each new utterance.

The node is also the graph's resting point.  Every finished branch loops
back here with an empty ``user_query``; the router then ends the run.
"""

from __future__ import annotations

import logging

from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import (
    CLASSIFIER_FAILURE_MESSAGE,
    GREETING_MESSAGE,
    POLICY_ACK_MESSAGE,
    SCHEDULING_ACK_MESSAGE,
)
from wellness_agent.state import ConversationState, Intent, UiPhase, assistant_message

logger = logging.getLogger(__name__)


def make_infer_intent_node(deps: AgentDeps):
    """Create the intent node bound to ``deps.classifier``."""
    classifier = deps.classifier

    def infer_intent_node(state: ConversationState) -> dict:
        user_query = (state.get("user_query") or "").strip()

        if not user_query:
            if not state.get("messages"):
                logger.info("First interaction with empty query, sending greeting")
                return {
                    "messages": [assistant_message(GREETING_MESSAGE)],
                    "ui_phase": UiPhase.CHATTING,
                }
            logger.debug("No user query, nothing to classify")
            return {}

        if state.get("user_escalated"):
            # A human is already on the way; scheduling stays closed.
            logger.info("Thread %s is escalated, forcing policy intent", state.get("thread_id"))
            return {
                "messages": [assistant_message(POLICY_ACK_MESSAGE)],
                "intent": Intent.POLICY,
                "ui_phase": UiPhase.CHATTING,
            }

        try:
            result = classifier.classify(user_query)
        except Exception as exc:
            logger.warning("Intent classification failed, defaulting to policy: %s", exc)
            return {
                "messages": [assistant_message(CLASSIFIER_FAILURE_MESSAGE)],
                "intent": Intent.POLICY,
                "ui_phase": UiPhase.CHATTING,
            }

        intent = Intent(result.intent)
        logger.info(
            "Intent: %s (confidence %.2f) - %s", intent.value, result.confidence, result.reason,
        )

        if intent is Intent.SCHEDULING:
            update: dict = {
                "messages": [assistant_message(SCHEDULING_ACK_MESSAGE)],
                "intent": intent,
                "ui_phase": UiPhase.CHATTING,
            }
            if result.preferred_date is not None:
                update["preferred_date"] = result.preferred_date.isoformat()
            if result.preferred_provider:
                update["preferred_provider"] = result.preferred_provider
            return update

        # Policy and unknown both take the policy branch.
        return {
            "messages": [assistant_message(POLICY_ACK_MESSAGE)],
            "intent": intent,
            "ui_phase": UiPhase.CHATTING,
        }

    return infer_intent_node
