"""Tests for the intent classification node."""

from __future__ import annotations

from datetime import date

from langchain_core.messages import HumanMessage

from conftest import base_state, classification
from wellness_agent.exceptions import ClassificationError
from wellness_agent.nodes.intent import make_infer_intent_node
from wellness_agent.prompts import (
    CLASSIFIER_FAILURE_MESSAGE,
    GREETING_MESSAGE,
    POLICY_ACK_MESSAGE,
    SCHEDULING_ACK_MESSAGE,
)
from wellness_agent.state import Intent, UiPhase


class TestGreetingAndIdle:
    def test_first_interaction_greets(self, deps, classifier):
        node = make_infer_intent_node(deps)
        result = node(base_state())
        assert [m.content for m in result["messages"]] == [GREETING_MESSAGE]
        assert result["ui_phase"] is UiPhase.CHATTING
        classifier.classify.assert_not_called()

    def test_empty_query_with_history_is_a_no_op(self, deps, classifier):
        node = make_infer_intent_node(deps)
        state = base_state(messages=[HumanMessage(content="hi", id="u1")], user_query="")
        assert node(state) == {}
        classifier.classify.assert_not_called()


class TestClassification:
    def test_policy_intent_emits_one_ack(self, deps):
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="What is the cancellation policy?"))
        assert result["intent"] is Intent.POLICY
        assert [m.content for m in result["messages"]] == [POLICY_ACK_MESSAGE]

    def test_scheduling_intent_stores_preferences(self, deps, classifier):
        classifier.classify.return_value = classification(
            "scheduling", preferred_date=date(2030, 1, 8), preferred_provider="Mike",
        )
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="Book me with Mike on Jan 8"))
        assert result["intent"] is Intent.SCHEDULING
        assert result["preferred_date"] == "2030-01-08"
        assert result["preferred_provider"] == "Mike"
        assert [m.content for m in result["messages"]] == [SCHEDULING_ACK_MESSAGE]

    def test_scheduling_without_preferences_leaves_them_alone(self, deps, classifier):
        classifier.classify.return_value = classification("scheduling")
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="I need an appointment"))
        assert "preferred_date" not in result
        assert "preferred_provider" not in result

    def test_low_confidence_is_advisory(self, deps, classifier):
        classifier.classify.return_value = classification("scheduling", confidence=0.1)
        node = make_infer_intent_node(deps)
        assert node(base_state(user_query="book?"))["intent"] is Intent.SCHEDULING

    def test_unknown_intent_is_kept_for_the_router(self, deps, classifier):
        classifier.classify.return_value = classification("unknown", confidence=0.3)
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="asdf"))
        assert result["intent"] is Intent.UNKNOWN
        assert [m.content for m in result["messages"]] == [POLICY_ACK_MESSAGE]

    def test_classifier_failure_defaults_to_policy(self, deps, classifier):
        classifier.classify.side_effect = ClassificationError("timeout")
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="hello?"))
        assert result["intent"] is Intent.POLICY
        assert [m.content for m in result["messages"]] == [CLASSIFIER_FAILURE_MESSAGE]

    def test_escalated_user_is_forced_to_policy(self, deps, classifier):
        classifier.classify.return_value = classification("scheduling")
        node = make_infer_intent_node(deps)
        result = node(base_state(user_query="book me please", user_escalated=True))
        assert result["intent"] is Intent.POLICY
        classifier.classify.assert_not_called()
