from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from core.errors import IntegrationErrorKind, ProvisioningError
from models.slot import BusyInterval, WorkingHours
from services.availability import (
    AvailabilityService,
    compute_available_slots,
    evaluate_slots,
    generate_fallback_slots,
    group_slots_by_date,
    normalize_busy,
    parse_freebusy_response,
)

from tests.conftest import FakeCalendarSession

UTC = timezone.utc
NOW = datetime(2026, 10, 20, 12, 0, tzinfo=UTC)  # Tuesday
WEDNESDAY = datetime(2026, 10, 21, 0, 0, tzinfo=UTC)
WEDNESDAY_END = WEDNESDAY.replace(hour=23, minute=59)
HOURS = WorkingHours(start_hour=9, end_hour=17)


def _times(slots):
    return [s.time for s in slots]


class TestComputeAvailableSlots:
    """Slot generation against busy calendars."""

    def test_busy_hour_is_excluded_from_a_single_weekday(self):
        busy = {"A": [BusyInterval(start=WEDNESDAY.replace(hour=10), end=WEDNESDAY.replace(hour=11))]}
        slots = compute_available_slots(
            ["A"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW
        )
        assert _times(slots) == ["09:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]
        assert all(s.date.isoformat() == "2026-10-21" for s in slots)

    def test_touching_busy_interval_does_not_block(self):
        busy = {"A": [{"start": "2026-10-21T09:00:00Z", "end": "2026-10-21T10:00:00Z"}]}
        slots = compute_available_slots(
            ["A"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW
        )
        assert "09:00" not in _times(slots)
        assert "10:00" in _times(slots)

    def test_busy_on_any_requested_calendar_blocks(self):
        busy = {
            "A": [{"start": "2026-10-21T09:30:00Z", "end": "2026-10-21T09:45:00Z"}],
            "B": [{"start": "2026-10-21T15:00:00Z", "end": "2026-10-21T17:00:00Z"}],
        }
        slots = compute_available_slots(
            ["A", "B"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW
        )
        assert _times(slots) == ["10:00", "11:00", "12:00", "13:00", "14:00"]

    def test_busy_on_unrequested_calendar_is_ignored(self):
        busy = {"other": [{"start": "2026-10-21T09:00:00Z", "end": "2026-10-21T17:00:00Z"}]}
        slots = compute_available_slots(
            ["A"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW
        )
        assert len(slots) == 8

    def test_empty_calendar_ids_imposes_no_constraints(self):
        busy = {"A": [{"start": "2026-10-21T00:00:00Z", "end": "2026-10-22T00:00:00Z"}]}
        slots = compute_available_slots([], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW)
        assert len(slots) == 8

    def test_past_slots_are_excluded(self):
        # now is Tuesday 12:00, so Tuesday 09:00-12:00 starts are gone
        tuesday = NOW.replace(hour=0)
        slots = compute_available_slots([], 60, tuesday, tuesday.replace(hour=23), HOURS, {}, now=NOW)
        assert _times(slots) == ["13:00", "14:00", "15:00", "16:00"]

    def test_window_days_are_enumerated_in_full(self):
        # Window Tue 12:00 -> Wed 10:00, but both days contribute every working hour
        early = datetime(2026, 10, 20, 8, 0, tzinfo=UTC)
        slots = compute_available_slots(
            [], 60, NOW, WEDNESDAY.replace(hour=10), HOURS, {}, now=early
        )
        assert len(slots) == 16
        assert slots[0].start == datetime(2026, 10, 20, 9, tzinfo=UTC)
        assert slots[-1].start == datetime(2026, 10, 21, 16, tzinfo=UTC)

    def test_last_day_keeps_afternoon_after_window_end(self):
        slots = compute_available_slots(
            [], 60, WEDNESDAY, WEDNESDAY.replace(hour=10), HOURS, {}, now=NOW
        )
        assert _times(slots) == ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]

    def test_naive_busy_interval_is_treated_as_utc(self):
        busy = {"c": [BusyInterval(start=datetime(2026, 10, 21, 10), end=datetime(2026, 10, 21, 11))]}
        slots = compute_available_slots(["c"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW)
        assert "10:00" not in _times(slots)
        assert len(slots) == 7

    def test_inverted_busy_interval_is_dropped(self):
        busy = {"c": [BusyInterval(start=WEDNESDAY.replace(hour=11), end=WEDNESDAY.replace(hour=10))]}
        slots = compute_available_slots(["c"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW)
        assert len(slots) == 8

    def test_slot_starting_exactly_now_is_excluded(self):
        now = WEDNESDAY.replace(hour=9)
        slots = compute_available_slots([], 60, WEDNESDAY, WEDNESDAY_END, HOURS, {}, now=now)
        assert _times(slots)[0] == "10:00"

    def test_weekends_are_skipped(self):
        saturday = datetime(2026, 10, 24, tzinfo=UTC)
        slots = compute_available_slots([], 60, saturday, saturday + timedelta(days=1), HOURS, {}, now=NOW)
        assert slots == []

    def test_duration_steps_slot_starts(self):
        slots = compute_available_slots(
            [], 30, WEDNESDAY, WEDNESDAY_END, WorkingHours(start_hour=9, end_hour=11), {}, now=NOW
        )
        assert _times(slots) == ["09:00", "09:30", "10:00", "10:30"]
        assert slots[0].end - slots[0].start == timedelta(minutes=30)

    def test_slots_follow_clinic_timezone(self):
        kolkata = ZoneInfo("Asia/Kolkata")
        start = datetime(2026, 10, 21, tzinfo=kolkata)
        slots = compute_available_slots(
            [], 60, start, start + timedelta(days=1), HOURS, {}, now=NOW, tz=kolkata
        )
        assert slots[0].time == "09:00"
        assert slots[0].start.utcoffset() == timedelta(hours=5, minutes=30)

    def test_malformed_busy_data_is_tolerated(self):
        busy = {
            "A": [
                {"start": "not a date", "end": "2026-10-21T10:00:00Z"},
                {"start": "2026-10-21T12:00:00Z"},
                {"start": "2026-10-21T14:00:00Z", "end": "2026-10-21T13:00:00Z"},
                "garbage",
                None,
            ],
            "B": "not a list",
        }
        slots = compute_available_slots(
            ["A", "B"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW
        )
        assert len(slots) == 8

    def test_identical_inputs_give_identical_output(self):
        busy = {"A": [{"start": "2026-10-21T10:15:00Z", "end": "2026-10-21T11:45:00Z"}]}
        args = (["A"], 45, WEDNESDAY, WEDNESDAY + timedelta(days=3), HOURS, busy)
        first = compute_available_slots(*args, now=NOW)
        second = compute_available_slots(*args, now=NOW)
        assert first == second
        assert [s.start for s in first] == sorted(s.start for s in first)

    @pytest.mark.parametrize("duration", [15, 30, 45, 60, 90])
    def test_slots_are_disjoint_and_avoid_busy_time(self, duration):
        base = WEDNESDAY.replace(hour=8)
        intervals = [
            BusyInterval(start=base + timedelta(minutes=m), end=base + timedelta(minutes=m + length))
            for m, length in [(20, 35), (130, 10), (200, 90), (400, 25), (1500, 120)]
        ]
        busy = {"A": intervals[:3], "B": intervals[3:]}
        slots = compute_available_slots(
            ["A", "B"], duration, WEDNESDAY, WEDNESDAY + timedelta(days=2), HOURS, busy, now=NOW
        )
        assert slots
        for earlier, later in zip(slots, slots[1:]):
            assert earlier.end <= later.start
        for slot in slots:
            assert not any(i.overlaps(slot.start, slot.end) for i in intervals)


class TestEvaluateAndGroup:
    def test_evaluate_flags_busy_slots(self):
        busy = {"A": [{"start": "2026-10-21T10:00:00Z", "end": "2026-10-21T11:00:00Z"}]}
        slots = evaluate_slots(["A"], 60, WEDNESDAY, WEDNESDAY_END, HOURS, busy, now=NOW)
        assert len(slots) == 8
        assert [s.time for s in slots if not s.available] == ["10:00"]

    def test_group_by_date(self):
        slots = compute_available_slots([], 60, WEDNESDAY, WEDNESDAY + timedelta(days=1), HOURS, {}, now=NOW)
        grouped = group_slots_by_date(slots)
        assert list(grouped) == ["2026-10-21", "2026-10-22"]
        first = grouped["2026-10-21"][0]
        assert first == {
            "date": "2026-10-21",
            "time": "09:00",
            "start": "2026-10-21T09:00:00+00:00",
            "end": "2026-10-21T10:00:00+00:00",
            "available": True,
        }


class TestFallbackSlots:
    def test_fallback_matches_unconstrained_computation(self):
        window_end = WEDNESDAY + timedelta(days=7)
        fallback = generate_fallback_slots(60, WEDNESDAY, window_end, HOURS, now=NOW)
        assert fallback == compute_available_slots([], 60, WEDNESDAY, window_end, HOURS, {}, now=NOW)
        # Wed, Thu, Fri, Mon, Tue and the closing Wednesday
        assert len(fallback) == 6 * 8

    def test_fallback_excludes_past(self):
        slots = generate_fallback_slots(60, NOW - timedelta(days=1), NOW + timedelta(hours=3), HOURS, now=NOW)
        assert all(s.start > NOW for s in slots)


class TestFreeBusyParsing:
    def test_parses_busy_per_calendar(self):
        response = {
            "calendars": {
                "primary": {"busy": [{"start": "2026-10-21T10:00:00Z", "end": "2026-10-21T11:00:00Z"}]},
                "team@example.com": {"busy": []},
            }
        }
        busy = parse_freebusy_response(response)
        assert busy["primary"] == [
            BusyInterval(start=datetime(2026, 10, 21, 10, tzinfo=UTC), end=datetime(2026, 10, 21, 11, tzinfo=UTC))
        ]
        assert busy["team@example.com"] == []

    def test_calendar_errors_contribute_no_busy_time(self):
        response = {
            "calendars": {
                "missing@example.com": {
                    "errors": [{"domain": "global", "reason": "notFound"}],
                    "busy": [{"start": "2026-10-21T10:00:00Z", "end": "2026-10-21T11:00:00Z"}],
                }
            }
        }
        assert parse_freebusy_response(response) == {"missing@example.com": []}

    @pytest.mark.parametrize("response", [None, [], "x", {"calendars": None}, {"calendars": {"a": "x"}}])
    def test_unexpected_shapes(self, response):
        assert parse_freebusy_response(response) == {}

    def test_naive_datetimes_are_treated_as_utc(self):
        (interval,) = normalize_busy([{"start": "2026-10-21T10:00:00", "end": "2026-10-21T11:00:00"}])
        assert interval.start.tzinfo is not None
        assert interval.start == datetime(2026, 10, 21, 10, tzinfo=UTC)


class TestAvailabilityService:
    @pytest.mark.asyncio
    async def test_uses_calendar_busy_data(self, cfg):
        session = FakeCalendarSession(
            freebusy={"calendars": {"primary": {"busy": [{"start": "2026-10-21T10:00:00Z", "end": "2026-10-21T11:00:00Z"}]}}}
        )
        service = AvailabilityService(session, cfg)
        result = await service.find_slots(
            calendar_ids=["primary"], window_start=WEDNESDAY, window_end=WEDNESDAY_END, now=NOW
        )
        assert result.source == "calendar"
        assert "10:00" not in _times(result.slots)
        assert session.freebusy_calls == [["primary"]]

    @pytest.mark.asyncio
    async def test_falls_back_without_session(self, cfg):
        service = AvailabilityService(None, cfg)
        result = await service.find_slots(
            calendar_ids=["primary"], window_start=WEDNESDAY, window_end=WEDNESDAY_END, now=NOW
        )
        assert result.source == "fallback"
        assert len(result.slots) == 8

    @pytest.mark.asyncio
    async def test_falls_back_when_freebusy_fails(self, cfg):
        session = FakeCalendarSession(freebusy_error=ProvisioningError(IntegrationErrorKind.internal, "boom"))
        service = AvailabilityService(session, cfg)
        result = await service.find_slots(
            calendar_ids=["primary"], window_start=WEDNESDAY, window_end=WEDNESDAY_END, now=NOW
        )
        assert result.source == "fallback"
        assert len(result.slots) == 8

    @pytest.mark.asyncio
    async def test_falls_back_when_not_authenticated(self, cfg):
        session = FakeCalendarSession(verify_error=ProvisioningError(IntegrationErrorKind.unauthenticated))
        service = AvailabilityService(session, cfg)
        result = await service.find_slots(
            calendar_ids=["primary"], window_start=WEDNESDAY, window_end=WEDNESDAY_END, now=NOW
        )
        assert result.source == "fallback"
        assert session.freebusy_calls == []
