"""Nodes: the three-stage slot-offer pipeline.

  offer_options_agent  → the model decides which availability call to make
  offer_options_tools  → the calls are executed verbatim
  offer_options_final  → results are parsed, capped and offered to the user

The agent never talks to the user directly; the only user-visible outcome of
the pipeline is the final stage's slot list (or an apology and escalation).
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime, timedelta

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from wellness_agent.deps import AgentDeps
from wellness_agent.prompts import (
    AVAILABILITY_ERROR_MESSAGE,
    NO_SLOTS_MESSAGE,
    OFFER_REQUEST_PROMPT,
    SLOTS_PRESENTED_MESSAGE,
)
from wellness_agent.routing import CONFIRM_TIME
from wellness_agent.slots import parse_slots
from wellness_agent.state import (
    ConversationState,
    InterruptKind,
    InterruptPayload,
    UiPhase,
    assistant_message,
    new_message_id,
    utc_now_iso,
)
from wellness_agent.tools.availability import AVAILABILITY_TOOL_NAME, make_availability_tool

logger = logging.getLogger(__name__)

TOOL_ERROR_CONTENT = "Error: availability lookup failed"


def is_beyond_scheduling_window(preferred_date: str | None, window_days: int, today: date | None = None) -> bool:
    """True when ``preferred_date`` falls after today + ``window_days``."""
    if not preferred_date:
        return False
    try:
        requested = date.fromisoformat(preferred_date[:10])
    except ValueError:
        logger.warning("Ignoring unparseable preferred date %r", preferred_date)
        return False
    today = today or datetime.now(UTC).date()
    return requested > today + timedelta(days=window_days)


# ── Stage A: agent ───────────────────────────────────────────────────


def make_offer_options_agent_node(deps: AgentDeps):
    """Create the stage that asks the model for an availability call."""
    availability_tool = make_availability_tool(deps.scheduler)
    window_days = deps.settings.scheduling_window_days

    def offer_options_agent_node(state: ConversationState) -> dict:
        preferred_date = state.get("preferred_date")
        preferred_provider = state.get("preferred_provider")

        if is_beyond_scheduling_window(preferred_date, window_days):
            logger.info("Preferred date %s is beyond the %d-day window", preferred_date, window_days)
            return {"date_beyond_scheduling_window": True, "escalation_required": True}

        request = HumanMessage(
            content=OFFER_REQUEST_PROMPT.format(
                preferred_date=preferred_date or "none",
                preferred_provider=preferred_provider or "none",
            ),
        )
        try:
            completion = deps.completion.complete([request], tools=[availability_tool])
            text = completion.text
            tool_calls = [call.model_dump() for call in completion.tool_calls]
        except Exception as exc:
            # Without the model we still know which lookup to make.
            logger.warning("Offer agent completion failed, calling availability directly: %s", exc)
            text = ""
            tool_calls = [{
                "id": f"call_fallback_{uuid.uuid4().hex[:12]}",
                "name": AVAILABILITY_TOOL_NAME,
                "args": {
                    "preferred_date": preferred_date,
                    "preferred_provider": preferred_provider,
                },
            }]

        logger.info("Offer agent issued %d tool call(s)", len(tool_calls))
        response = AIMessage(
            content=text,
            tool_calls=tool_calls,
            id=new_message_id(),
            additional_kwargs={"at": utc_now_iso()},
        )
        return {"messages": [response], "date_beyond_scheduling_window": False}

    return offer_options_agent_node


# ── Stage B: tools ───────────────────────────────────────────────────


def make_offer_options_tools_node(deps: AgentDeps):
    """Create the stage that executes the agent's tool calls as given."""
    availability_tool = make_availability_tool(deps.scheduler)
    tools_by_name = {availability_tool.name: availability_tool}

    def offer_options_tools_node(state: ConversationState) -> dict:
        messages = state.get("messages") or []
        last = messages[-1] if messages else None
        tool_calls = getattr(last, "tool_calls", None) or []
        if not tool_calls:
            logger.warning("Tools stage entered without tool calls")
            return {}

        results = []
        for call in tool_calls:
            tool = tools_by_name.get(call["name"])
            if tool is None:
                logger.warning("Agent requested unknown tool %s", call["name"])
                content = f"Error: unknown tool {call['name']}"
            else:
                try:
                    content = tool.invoke(call.get("args") or {})
                except Exception:
                    logger.exception("Tool %s failed", call["name"])
                    content = TOOL_ERROR_CONTENT
            results.append(
                ToolMessage(
                    content=content,
                    tool_call_id=call["id"],
                    name=call["name"],
                    id=new_message_id(),
                    additional_kwargs={"at": utc_now_iso()},
                ),
            )
        return {"messages": results}

    return offer_options_tools_node


# ── Stage C: finalize ────────────────────────────────────────────────


def _trailing_tool_messages(messages: list) -> list[ToolMessage]:
    """Tool results produced by the most recent tools stage, oldest first."""
    trailing: list[ToolMessage] = []
    for message in reversed(messages):
        if not isinstance(message, ToolMessage):
            break
        trailing.append(message)
    trailing.reverse()
    return trailing


def make_offer_options_final_node(deps: AgentDeps):
    """Create the stage that turns tool results into a select-time question."""
    max_slots = deps.settings.max_offered_slots

    def _escalate(message: str | None) -> dict:
        update = {
            "available_slots": [],
            "escalation_required": True,
            "slots_unacceptable": True,
        }
        if message:
            update["messages"] = [assistant_message(message)]
        return update

    def offer_options_final_node(state: ConversationState) -> dict:
        if state.get("date_beyond_scheduling_window"):
            # The escalation node explains the window; nothing to parse.
            return _escalate(None)

        trailing = _trailing_tool_messages(state.get("messages") or [])
        if not trailing:
            logger.warning("No availability results to finalize")
            return _escalate(AVAILABILITY_ERROR_MESSAGE)

        slots = parse_slots(trailing[-1].content)
        if slots is None:
            return _escalate(AVAILABILITY_ERROR_MESSAGE)
        if not slots:
            logger.info("Availability lookup returned no slots")
            return _escalate(NO_SLOTS_MESSAGE)

        offered = slots[:max_slots]
        logger.info("Offering %d of %d slot(s)", len(offered), len(slots))
        return {
            "messages": [
                assistant_message(
                    SLOTS_PRESENTED_MESSAGE,
                    slots=[slot.model_dump(mode="json") for slot in offered],
                ),
            ],
            "available_slots": offered,
            "selected_slot_id": None,
            "time_confirmed": None,
            "escalation_required": False,
            "ui_phase": UiPhase.SELECTING_TIME,
            "pending_interrupt": InterruptPayload(
                kind=InterruptKind.SELECT_TIME,
                slots=offered,
                resume_node=CONFIRM_TIME,
            ),
        }

    return offer_options_final_node
