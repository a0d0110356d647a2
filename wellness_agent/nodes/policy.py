"""Node: policy_question — retrieval-grounded answers with self-validation.

Pipeline: retrieve → draft → judge → (conservative rewrite if rejected).
When retrieval finds nothing the fixed decline message is sent without any
model call, so the assistant never answers policy questions from thin air.
"""

from __future__ import annotations

import json
import logging
import re

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from wellness_agent.collaborators import RetrievedChunk
from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import (
    CONSERVATIVE_PROMPT,
    CONSERVATIVE_VALIDATION_NOTE,
    NO_INFORMATION_MESSAGE,
    POLICY_ANSWER_PROMPT,
    POLICY_FAILURE_MESSAGE,
    POLICY_PROGRESS_MESSAGE,
    POLICY_SYSTEM_PROMPT,
    VALIDATION_PROMPT,
    VALIDATION_SYSTEM_PROMPT,
    format_context,
)
from wellness_agent.state import ConversationState, UiPhase, assistant_message

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class ValidationVerdict(BaseModel):
    """The judge's opinion of a drafted answer."""

    is_valid: bool = Field(validation_alias=AliasChoices("isValid", "is_valid"))
    confidence: float = 0.0
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value) -> float:
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            return 0.0


def parse_validation_verdict(text: str) -> ValidationVerdict:
    """Pull the first JSON object out of the judge's reply.

    Anything unparseable counts as a rejection with zero confidence.
    """
    match = _JSON_OBJECT.search(text or "")
    if match:
        try:
            return ValidationVerdict.model_validate(json.loads(match.group(0)))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Could not parse validation response: %s", exc)
    else:
        logger.warning("Validation response contained no JSON object")
    return ValidationVerdict(is_valid=False, confidence=0.0, reasoning="Failed to parse validation response")


def make_policy_question_node(deps: AgentDeps):
    """Create the policy node bound to the retriever and completion models."""
    settings = deps.settings

    def _retrieve(query: str) -> list[RetrievedChunk]:
        chunks = deps.retriever.retrieve(query, settings.retrieval_top_k)
        kept = [chunk for chunk in chunks if chunk.score >= settings.min_retrieval_score]
        logger.info(
            "Retrieved %d chunk(s), %d above score %.2f",
            len(chunks), len(kept), settings.min_retrieval_score,
        )
        return kept

    def _draft(query: str, context: str) -> str:
        prompt = POLICY_ANSWER_PROMPT.format(
            no_information=NO_INFORMATION_MESSAGE, context=context, user_query=query,
        )
        completion = deps.completion.complete(
            [SystemMessage(content=POLICY_SYSTEM_PROMPT), HumanMessage(content=prompt)],
        )
        return completion.text.strip()

    def _judge(query: str, answer: str, context: str) -> ValidationVerdict:
        prompt = VALIDATION_PROMPT.format(user_query=query, answer=answer, context=context)
        completion = deps.judge.complete(
            [SystemMessage(content=VALIDATION_SYSTEM_PROMPT), HumanMessage(content=prompt)],
        )
        return parse_validation_verdict(completion.text)

    def _conservative(query: str, context: str) -> str:
        prompt = CONSERVATIVE_PROMPT.format(context=context, user_query=query)
        completion = deps.completion.complete(
            [SystemMessage(content=POLICY_SYSTEM_PROMPT), HumanMessage(content=prompt)],
        )
        return completion.text.strip() or NO_INFORMATION_MESSAGE

    def policy_question_node(state: ConversationState) -> dict:
        user_query = (state.get("user_query") or "").strip()
        done = {"user_query": "", "ui_phase": UiPhase.CHATTING}
        if not user_query:
            logger.debug("Policy node entered without a query")
            return done

        progress = assistant_message(POLICY_PROGRESS_MESSAGE)
        try:
            chunks = _retrieve(user_query)
            if not chunks:
                return {**done, "messages": [progress, assistant_message(NO_INFORMATION_MESSAGE)]}

            context = format_context(chunks)
            citations = [chunk.citation for chunk in chunks]

            answer = _draft(user_query, context)
            verdict = (
                _judge(user_query, answer, context)
                if answer
                else ValidationVerdict(is_valid=False, reasoning="Empty draft answer")
            )
            logger.info(
                "Answer validation: valid=%s confidence=%.2f (%s)",
                verdict.is_valid, verdict.confidence, verdict.reasoning,
            )

            if not verdict.is_valid or verdict.confidence < settings.validation_confidence_threshold:
                logger.info("Draft rejected, generating conservative answer")
                final = assistant_message(
                    _conservative(user_query, context),
                    citations=citations,
                    validation_note=CONSERVATIVE_VALIDATION_NOTE,
                )
            else:
                final = assistant_message(answer, citations=citations)

            return {**done, "messages": [progress, final]}

        except Exception:
            logger.exception("Policy question pipeline failed")
            return {**done, "messages": [assistant_message(POLICY_FAILURE_MESSAGE)]}

    return policy_question_node
