"""Availability tool exposed to the slot-offer agent."""

from __future__ import annotations

import logging

from langchain_core.tools import BaseTool, tool

from wellness_agent.collaborators import SchedulingBackend
from wellness_agent.slots import slots_to_json

logger = logging.getLogger(__name__)

AVAILABILITY_TOOL_NAME = "get_availability"


def make_availability_tool(scheduler: SchedulingBackend) -> BaseTool:
    """Wrap ``scheduler.get_availability`` as a LangChain tool.

    Backend errors propagate; the tools node turns them into an error
    message so the finalize stage can escalate.
    """

    @tool(AVAILABILITY_TOOL_NAME)
    def get_availability(
        preferred_date: str | None = None,
        preferred_provider: str | None = None,
    ) -> str:
        """Get available appointment slots at the wellness clinic.

        Args:
            preferred_date: Date the patient prefers, as YYYY-MM-DD. Omit for the next available days.
            preferred_provider: Name of the provider the patient prefers. Omit for any provider.
        """
        slots = scheduler.get_availability(
            preferred_date=preferred_date,
            preferred_provider=preferred_provider,
        )
        logger.info(
            "get_availability(date=%s, provider=%s) -> %d slot(s)",
            preferred_date, preferred_provider, len(slots),
        )
        return slots_to_json(slots)

    return get_availability
