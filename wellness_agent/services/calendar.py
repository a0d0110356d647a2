"""In-process clinic calendar.

Generates weekday availability for each provider (three one-hour slots per
day) and keeps booked appointments in memory so that booked slots stop being
offered and reschedules are conflict-checked.

It implements :class:`~wellness_agent.collaborators.SchedulingBackend`; a
real calendar integration only has to provide the same three methods.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from wellness_agent.collaborators import AppointmentRecord, RescheduleResult
from wellness_agent.exceptions import CalendarError
from wellness_agent.services.metrics import metrics
from wellness_agent.state import TimeSlot

logger = logging.getLogger(__name__)

PROVIDERS = ("Sarah", "Mike", "Jennifer")
SLOT_START_HOURS = (9, 13, 15)
SLOT_LENGTH = timedelta(hours=1)
DAYS_AHEAD = 7


def _parse_instant(value: str) -> datetime:
    try:
        instant = datetime.fromisoformat(value)
    except ValueError as exc:
        raise CalendarError(f"Invalid timestamp {value!r}") from exc
    if instant.tzinfo is None:
        raise CalendarError(f"Timestamp {value!r} has no UTC offset")
    return instant


class StubCalendarService:
    """Thread-safe in-memory calendar for local runs, demos and tests."""

    def __init__(
        self,
        *,
        providers: tuple[str, ...] = PROVIDERS,
        days_ahead: int = DAYS_AHEAD,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._providers = providers
        self._days_ahead = days_ahead
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(UTC))
        self._appointments: dict[str, AppointmentRecord] = {}
        self._lock = threading.Lock()

    # ── Internal helpers ─────────────────────────────────────────────

    def _first_day(self, preferred_date: str | None) -> date:
        today = self._clock().astimezone(self._tz).date()
        if preferred_date:
            try:
                requested = date.fromisoformat(preferred_date[:10])
            except ValueError:
                logger.warning("Ignoring unparseable preferred date %r", preferred_date)
            else:
                if requested >= today:
                    return requested
        return today + timedelta(days=1)

    def _conflicts(self, provider: str | None, start: datetime, end: datetime, ignore: str | None = None) -> bool:
        for record in self._appointments.values():
            if record.id == ignore or record.provider != provider:
                continue
            if start < record.end and record.start < end:
                return True
        return False

    # ── SchedulingBackend ────────────────────────────────────────────

    def get_availability(
        self,
        preferred_date: str | None = None,
        preferred_provider: str | None = None,
    ) -> list[TimeSlot]:
        """Open slots from the preferred date (or tomorrow) for ``days_ahead`` days."""
        with metrics.timed("calendar", "get_availability"):
            now = self._clock()
            first_day = self._first_day(preferred_date)
            providers = self._providers
            if preferred_provider:
                wanted = preferred_provider.strip().lower()
                providers = tuple(p for p in self._providers if p.lower() == wanted) or self._providers

            slots: list[TimeSlot] = []
            with self._lock:
                for offset in range(self._days_ahead):
                    day = first_day + timedelta(days=offset)
                    if day.weekday() >= 5:
                        continue
                    for provider in providers:
                        for hour in SLOT_START_HOURS:
                            start = datetime.combine(day, time(hour), tzinfo=self._tz)
                            end = start + SLOT_LENGTH
                            if start <= now or self._conflicts(provider, start, end):
                                continue
                            slots.append(
                                TimeSlot(
                                    id=f"slot_{provider.lower()}_{start.strftime('%Y%m%d%H%M')}",
                                    start=start,
                                    end=end,
                                    provider=provider,
                                )
                            )
            slots.sort(key=lambda slot: (slot.start, slot.provider or ""))
            logger.debug("Generated %d open slot(s) from %s", len(slots), first_day)
            return slots

    def create_appointment(
        self,
        start: str,
        end: str,
        provider: str | None,
        attendee: str,
    ) -> AppointmentRecord:
        with metrics.timed("calendar", "create_appointment"):
            start_at, end_at = _parse_instant(start), _parse_instant(end)
            with self._lock:
                if self._conflicts(provider, start_at, end_at):
                    raise CalendarError(f"{provider or 'Provider'} is already booked at {start}")
                record = AppointmentRecord(
                    id=f"evt_{uuid.uuid4().hex[:12]}",
                    start=start_at,
                    end=end_at,
                    provider=provider,
                    attendee=attendee,
                )
                self._appointments[record.id] = record
            logger.info("Booked %s for %s at %s", record.id, attendee, start)
            return record

    def reschedule(
        self,
        event_id: str,
        new_start: str,
        new_end: str,
        reason: str | None = None,
    ) -> RescheduleResult:
        with metrics.timed("calendar", "reschedule"):
            start_at, end_at = _parse_instant(new_start), _parse_instant(new_end)
            with self._lock:
                record = self._appointments.get(event_id)
                if record is None:
                    return RescheduleResult(success=False, message=f"Appointment {event_id} was not found")
                if self._conflicts(record.provider, start_at, end_at, ignore=event_id):
                    return RescheduleResult(success=False, message="That time is no longer available")
                self._appointments[event_id] = record.model_copy(update={"start": start_at, "end": end_at})
            logger.info("Rescheduled %s to %s (%s)", event_id, new_start, reason or "no reason given")
            return RescheduleResult(success=True, message="Appointment rescheduled")

    # ── Introspection ────────────────────────────────────────────────

    def get_appointment(self, event_id: str) -> AppointmentRecord | None:
        with self._lock:
            return self._appointments.get(event_id)
