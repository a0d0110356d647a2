"""Slot parsing and formatting helpers for the scheduling flow.

Availability results reach the finalize stage as tool-message content whose
shape depends on who produced it: a bare JSON array, an object with a
``slots`` field, an already-decoded list/dict, or the error string the tools
node writes when the backend failed.  :func:`parse_slots` is the single place
that interprets all of them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from wellness_agent.state import TimeSlot

logger = logging.getLogger(__name__)


def parse_slots(content: Any) -> list[TimeSlot] | None:
    """Decode availability data into validated, id-unique slots.

    Returns ``None`` when the payload cannot be interpreted at all (so the
    caller can distinguish "broken" from "legitimately empty").  Individual
    malformed entries are dropped with a warning; duplicate ids keep their
    first occurrence.
    """
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Availability payload is not JSON: %.80r", content)
            return None

    if isinstance(content, dict):
        if "slots" not in content:
            logger.warning("Availability object has no 'slots' field: keys=%s", sorted(content))
            return None
        content = content["slots"]

    if not isinstance(content, list):
        logger.warning("Availability payload has unexpected type %s", type(content).__name__)
        return None

    slots: list[TimeSlot] = []
    seen: set[str] = set()
    for raw in content:
        try:
            slot = raw if isinstance(raw, TimeSlot) else TimeSlot.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed slot %r: %s", raw, exc.errors()[0]["msg"])
            continue
        if slot.id in seen:
            logger.warning("Dropping duplicate slot id %s", slot.id)
            continue
        seen.add(slot.id)
        slots.append(slot)
    return slots


def slots_to_json(slots: list[TimeSlot]) -> str:
    """Encode slots the way the availability tool reports them."""
    return json.dumps([slot.model_dump(mode="json") for slot in slots])


def format_slot_time(slot: TimeSlot) -> str:
    """Render a slot start as e.g. 'Tuesday, 17 February 2026 at 10:30'."""
    return slot.start.strftime("%A, %d %B %Y at %H:%M")


def describe_slot(slot: TimeSlot) -> str:
    provider = slot.provider or "the next available provider"
    return f"{format_slot_time(slot)} with {provider}"
