"""Anthropic-backed intent classifier and completion model.

Model tiers follow the cost profile of each call:

  * **router** (Haiku)  — structured intent classification, tiny output
  * **fast**   (Haiku)  — answer validation ("judge")
  * **main**   (Sonnet) — policy drafting and the slot-offer tool call

Every call is timed into :mod:`wellness_agent.services.metrics` and any SDK
failure is re-raised as the matching ``CollaboratorError`` so that nodes only
ever have to handle this package's exceptions.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.tools import BaseTool

from wellness_agent.collaborators import Completion, IntentClassification, ToolCall
from wellness_agent.config import (
    ANTHROPIC_API_KEY,
    LLM_TIMEOUT_SECONDS,
    MODEL_NAME,
    ROUTER_MODEL_NAME,
)
from wellness_agent.exceptions import ClassificationError, CompletionError
from wellness_agent.prompts import INTENT_USER_PROMPT, get_intent_system_prompt
from wellness_agent.services.metrics import metrics
from wellness_agent.state import message_text

logger = logging.getLogger(__name__)


# ── LLM builders ────────────────────────────────────────────────────


def build_chat_model(
    model: str,
    *,
    temperature: float = 0.1,
    max_tokens: int = 1024,
) -> ChatAnthropic:
    """Build a ChatAnthropic client with the shared timeout and retry policy."""
    return ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=2,
    )


# ── Intent classifier ───────────────────────────────────────────────


class AnthropicIntentClassifier:
    """Classifies an utterance with structured output from the router model."""

    def __init__(self, llm: ChatAnthropic | None = None) -> None:
        llm = llm or build_chat_model(ROUTER_MODEL_NAME, temperature=0.0, max_tokens=256)
        self._structured = llm.with_structured_output(IntentClassification)

    def classify(self, user_query: str) -> IntentClassification:
        messages = [
            SystemMessage(content=get_intent_system_prompt()),
            HumanMessage(content=INTENT_USER_PROMPT.format(user_query=user_query)),
        ]
        t0 = time.perf_counter()
        try:
            result = self._structured.invoke(messages)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "intent_classify",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise ClassificationError(f"Intent classification failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        if not isinstance(result, IntentClassification):
            metrics.record_failure(
                "anthropic", "intent_classify",
                error_type="MalformedOutput", latency_ms=elapsed,
            )
            raise ClassificationError("Intent classifier returned malformed output")

        metrics.record_success("anthropic", "intent_classify", latency_ms=elapsed)
        logger.debug(
            "Router (%s) classified as %s (%.2f, %.0fms)",
            ROUTER_MODEL_NAME, result.intent, result.confidence, elapsed,
        )
        return result


# ── Completion model ────────────────────────────────────────────────


class AnthropicCompletionModel:
    """Plain or tool-enabled completion against one Anthropic model.

    ``operation`` is only used to label metrics (e.g. ``llm_invoke`` for the
    primary model, ``judge_invoke`` for the validator).
    """

    def __init__(
        self,
        model_name: str = MODEL_NAME,
        *,
        operation: str = "llm_invoke",
        llm: ChatAnthropic | None = None,
    ) -> None:
        self._model_name = model_name
        self._operation = operation
        self._llm = llm or build_chat_model(model_name)

    def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> Completion:
        runnable = self._llm.bind_tools(list(tools)) if tools else self._llm
        t0 = time.perf_counter()
        try:
            response = runnable.invoke(list(messages))
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", self._operation,
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise CompletionError(f"{self._model_name} completion failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", self._operation, latency_ms=elapsed)

        tool_calls = [
            ToolCall(
                id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                name=call["name"],
                args=call.get("args") or {},
            )
            for call in getattr(response, "tool_calls", None) or []
        ]
        logger.debug(
            "%s responded in %.0fms (%d tool call(s))",
            self._model_name, elapsed, len(tool_calls),
        )
        return Completion(text=message_text(response), tool_calls=tool_calls)
