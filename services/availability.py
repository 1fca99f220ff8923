"""
Free-slot computation over calendar busy data.

``compute_available_slots`` and ``generate_fallback_slots`` are pure: they
take ``now`` explicitly and never read the clock or the network, so the same
inputs always give the same slots. ``AvailabilityService`` wires them to a
live calendar session and falls back to the basic working-hours slots when
the calendar cannot be queried.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from core.config import AppSettings, settings as default_settings
from core.errors import ProvisioningError
from models.base import as_utc
from models.slot import BusyInterval, Slot, WorkingHours


logger = logging.getLogger(__name__)

SOURCE_CALENDAR = "calendar"
SOURCE_FALLBACK = "fallback"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def normalize_busy(entries: Any) -> List[BusyInterval]:
    """Coerce raw busy data into intervals, dropping anything malformed."""
    if not isinstance(entries, (list, tuple)):
        return []
    intervals: List[BusyInterval] = []
    for entry in entries:
        if isinstance(entry, BusyInterval):
            start, end = as_utc(entry.start), as_utc(entry.end)
        elif isinstance(entry, Mapping):
            start = _parse_datetime(entry.get("start"))
            end = _parse_datetime(entry.get("end"))
        else:
            continue
        if start is None or end is None or end <= start:
            continue
        intervals.append(BusyInterval(start=start, end=end))
    return intervals


def parse_freebusy_response(response: Any) -> Dict[str, List[BusyInterval]]:
    """Extract per-calendar busy intervals from a freebusy query response.

    Calendars reporting errors contribute no busy time.
    """
    if not isinstance(response, Mapping):
        return {}
    calendars = response.get("calendars")
    if not isinstance(calendars, Mapping):
        return {}
    busy_by_calendar: Dict[str, List[BusyInterval]] = {}
    for calendar_id, payload in calendars.items():
        if not isinstance(payload, Mapping):
            continue
        if payload.get("errors"):
            logger.warning(
                "availability.freebusy.calendar_error",
                extra={"calendar_id": calendar_id, "errors": payload.get("errors")},
            )
            busy_by_calendar[calendar_id] = []
            continue
        busy_by_calendar[calendar_id] = normalize_busy(payload.get("busy"))
    return busy_by_calendar


def _local_days(window_start: datetime, window_end: datetime, tz: tzinfo) -> Iterator[date]:
    day = window_start.astimezone(tz).date()
    last = window_end.astimezone(tz).date()
    while day <= last:
        yield day
        day += timedelta(days=1)


def _candidate_slots(
    duration_minutes: int,
    window_start: datetime,
    window_end: datetime,
    working_hours: WorkingHours,
    tz: tzinfo,
) -> Iterator[Slot]:
    step = timedelta(minutes=duration_minutes)
    first_minute = working_hours.start_hour * 60
    last_minute = working_hours.end_hour * 60
    for day in _local_days(window_start, window_end, tz):
        # Monday=0 ... Friday=4
        if day.weekday() >= 5:
            continue
        minute = first_minute
        while minute < last_minute:
            start = datetime.combine(day, time(minute // 60, minute % 60), tzinfo=tz)
            end = start + step
            yield Slot(date=day, time=start.strftime("%H:%M"), start=start, end=end)
            minute += duration_minutes


def evaluate_slots(
    calendar_ids: Iterable[str],
    duration_minutes: int,
    window_start: datetime,
    window_end: datetime,
    working_hours: WorkingHours,
    busy_by_calendar: Mapping[str, Any],
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> List[Slot]:
    """Every future candidate slot in the window, flagged available or not."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    window_start = as_utc(window_start)
    window_end = as_utc(window_end)
    now = as_utc(now)

    busy: List[BusyInterval] = []
    for calendar_id in dict.fromkeys(calendar_ids):
        busy.extend(normalize_busy(busy_by_calendar.get(calendar_id)))

    slots: List[Slot] = []
    for slot in _candidate_slots(duration_minutes, window_start, window_end, working_hours, tz):
        if slot.start <= now:
            continue
        available = not any(interval.overlaps(slot.start, slot.end) for interval in busy)
        if not available:
            slot = slot.model_copy(update={"available": False})
        slots.append(slot)
    return slots


def compute_available_slots(
    calendar_ids: Iterable[str],
    duration_minutes: int,
    window_start: datetime,
    window_end: datetime,
    working_hours: WorkingHours,
    busy_by_calendar: Mapping[str, Any],
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> List[Slot]:
    """Slots of ``duration_minutes`` inside working hours that are free in every calendar.

    Every clinic-local day from the date of ``window_start`` through the date
    of ``window_end`` is enumerated in full; the window picks days, not hours.
    An empty ``calendar_ids`` imposes no busy constraints. Results are in
    chronological order and never start at or before ``now``.
    """
    return [
        slot
        for slot in evaluate_slots(
            calendar_ids,
            duration_minutes,
            window_start,
            window_end,
            working_hours,
            busy_by_calendar,
            now=now,
            tz=tz,
        )
        if slot.available
    ]


def generate_fallback_slots(
    duration_minutes: int,
    window_start: datetime,
    window_end: datetime,
    working_hours: WorkingHours,
    *,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> List[Slot]:
    """Working-hours slots with no busy data, used when the calendar is unavailable."""
    return compute_available_slots(
        [], duration_minutes, window_start, window_end, working_hours, {}, now=now, tz=tz
    )


def group_slots_by_date(slots: Sequence[Slot]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for slot in slots:
        grouped.setdefault(slot.date.isoformat(), []).append(slot.descriptor())
    return grouped


class AvailabilityResult(BaseModel):
    source: str
    timezone: str
    slots: List[Slot] = Field(default_factory=list)

    def by_date(self) -> Dict[str, List[Dict[str, Any]]]:
        return group_slots_by_date(self.slots)


class AvailabilityService:
    def __init__(self, session: Any = None, cfg: AppSettings = default_settings) -> None:
        self.session = session
        self.cfg = cfg
        self.tz = ZoneInfo(cfg.clinic_timezone)

    def default_working_hours(self) -> WorkingHours:
        return WorkingHours(start_hour=self.cfg.working_hours_start, end_hour=self.cfg.working_hours_end)

    def _calendar_usable(self) -> bool:
        return bool(
            self.cfg.calendar_enabled
            and self.session is not None
            and getattr(self.session, "is_authenticated", False)
        )

    async def find_slots(
        self,
        *,
        calendar_ids: Sequence[str],
        window_start: datetime,
        window_end: datetime,
        duration_minutes: Optional[int] = None,
        working_hours: Optional[WorkingHours] = None,
        now: Optional[datetime] = None,
    ) -> AvailabilityResult:
        duration = duration_minutes or self.cfg.slot_duration_minutes
        hours = working_hours or self.default_working_hours()
        now = now or datetime.now(timezone.utc)

        if not self._calendar_usable():
            logger.info("availability.fallback", extra={"reason": "calendar_unavailable"})
            return self._fallback(duration, window_start, window_end, hours, now)

        busy_by_calendar: Dict[str, List[BusyInterval]] = {}
        if calendar_ids:
            try:
                response = await self.session.query_freebusy(
                    list(calendar_ids),
                    as_utc(window_start),
                    as_utc(window_end),
                    timeout=self.cfg.freebusy_timeout_seconds,
                )
            except (ProvisioningError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "availability.fallback",
                    extra={"reason": "freebusy_failed", "error": str(exc), "calendar_ids": list(calendar_ids)},
                )
                return self._fallback(duration, window_start, window_end, hours, now)
            busy_by_calendar = parse_freebusy_response(response)

        slots = compute_available_slots(
            calendar_ids, duration, window_start, window_end, hours, busy_by_calendar, now=now, tz=self.tz
        )
        logger.info(
            "availability.computed",
            extra={"calendar_ids": list(calendar_ids), "slots": len(slots), "source": SOURCE_CALENDAR},
        )
        return AvailabilityResult(source=SOURCE_CALENDAR, timezone=self.cfg.clinic_timezone, slots=slots)

    def _fallback(
        self,
        duration: int,
        window_start: datetime,
        window_end: datetime,
        hours: WorkingHours,
        now: datetime,
    ) -> AvailabilityResult:
        slots = generate_fallback_slots(duration, window_start, window_end, hours, now=now, tz=self.tz)
        return AvailabilityResult(source=SOURCE_FALLBACK, timezone=self.cfg.clinic_timezone, slots=slots)
