"""
Tests for slot generation: weekly blocks, notice and advance windows,
buffers around busy time, daily capacity and DST days.
"""

from __future__ import annotations

import random
from datetime import date, datetime, time, timedelta, timezone

from slotflow.application.use_cases.availability import AvailabilityEngine, has_conflict
from slotflow.domain.entities.availability import AvailabilityRule, BusyInterval, SlotRequest, TimeBlock

SESSIONS = "sessions"
PERSONAL = "personal"
MONDAY = date(2030, 1, 7)
NEW_YEAR = datetime(2030, 1, 1, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def monday_rule(**overrides) -> AvailabilityRule:
    values = dict(
        weekly_availability={"MON": (TimeBlock(time(9), time(12)),)},
        timezone="America/Chicago",
        buffer_minutes=0,
        slot_increment_minutes=60,
    )
    values.update(overrides)
    return AvailabilityRule(**values)


def engine_at(now: datetime) -> AvailabilityEngine:
    return AvailabilityEngine(SESSIONS, clock=lambda: now)


def monday_request(duration_minutes: int = 60) -> SlotRequest:
    return SlotRequest(start_date=MONDAY, end_date=MONDAY, duration_minutes=duration_minutes)


def test_open_block_yields_every_fitting_start():
    """A 09:00-12:00 Chicago block with hourly steps gives 09:00, 10:00 and 11:00 local."""
    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(), [])

    assert slots == [utc(2030, 1, 7, 15), utc(2030, 1, 7, 16), utc(2030, 1, 7, 17)]
    assert all(slot.tzinfo is not None for slot in slots)


def test_buffered_busy_hour_blocks_neighbouring_starts():
    """Busy 09:00-10:00 local with a 30 minute buffer blocks the 09:00 and 10:00 starts."""
    busy = [BusyInterval(utc(2030, 1, 7, 15), utc(2030, 1, 7, 16), SESSIONS)]

    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(buffer_minutes=30), busy)

    assert utc(2030, 1, 7, 15) not in slots
    assert utc(2030, 1, 7, 16) not in slots
    # 11:00-12:00 starts exactly 30 minutes after the padded window closes at 10:30.
    assert slots == [utc(2030, 1, 7, 17)]


def test_day_at_capacity_has_no_slots():
    busy = [BusyInterval(utc(2030, 1, 7, 21), utc(2030, 1, 7, 22), SESSIONS)]

    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(max_bookings_per_day=1), busy)

    assert slots == []


def test_personal_calendar_does_not_count_toward_capacity():
    busy = [BusyInterval(utc(2030, 1, 7, 21), utc(2030, 1, 7, 22), PERSONAL)]

    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(max_bookings_per_day=1), busy)

    assert len(slots) == 3


def test_personal_busy_time_still_blocks_slots():
    busy = [BusyInterval(utc(2030, 1, 7, 16), utc(2030, 1, 7, 17), PERSONAL)]

    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(), busy)

    assert slots == [utc(2030, 1, 7, 15), utc(2030, 1, 7, 17)]


def test_slot_ending_exactly_at_block_end_is_kept_and_longer_one_is_not():
    slots = engine_at(NEW_YEAR).find_slots(monday_request(90), monday_rule(slot_increment_minutes=30), [])

    # 10:30 + 90 minutes == 12:00 is the last start that fits.
    assert slots[-1] == utc(2030, 1, 7, 16, 30)
    assert len(slots) == 4


def test_min_notice_drops_early_candidates():
    """Sunday 10:00 local plus 24h notice leaves Monday from 10:00 onwards."""
    now = utc(2030, 1, 6, 16)

    slots = engine_at(now).find_slots(monday_request(), monday_rule(), [])

    assert slots == [utc(2030, 1, 7, 16), utc(2030, 1, 7, 17)]


def test_days_beyond_advance_window_are_skipped():
    slots = engine_at(NEW_YEAR).find_slots(monday_request(), monday_rule(max_advance_days=3), [])

    assert slots == []


def test_days_without_blocks_are_skipped():
    request = SlotRequest(start_date=date(2030, 1, 8), end_date=date(2030, 1, 13), duration_minutes=60)

    assert engine_at(NEW_YEAR).find_slots(request, monday_rule(), []) == []


def test_multi_day_range_is_sorted_across_blocks():
    rule = monday_rule(
        weekly_availability={
            "MON": (TimeBlock(time(13), time(14)), TimeBlock(time(9), time(10))),
            "TUE": (TimeBlock(time(9), time(10)),),
        }
    )
    request = SlotRequest(start_date=MONDAY, end_date=MONDAY + timedelta(days=1), duration_minutes=60)

    slots = engine_at(NEW_YEAR).find_slots(request, rule, [])

    assert slots == [utc(2030, 1, 7, 15), utc(2030, 1, 7, 19), utc(2030, 1, 8, 15)]


def test_spring_forward_gap_yields_unique_instants():
    """On the New York spring-forward Sunday the skipped 02:00 start collapses onto 03:00."""
    rule = AvailabilityRule(
        weekly_availability={"SUN": (TimeBlock(time(1), time(4)),)},
        timezone="America/New_York",
        buffer_minutes=0,
        slot_increment_minutes=60,
    )
    request = SlotRequest(start_date=date(2030, 3, 10), end_date=date(2030, 3, 10), duration_minutes=60)

    slots = engine_at(utc(2030, 3, 1)).find_slots(request, rule, [])

    assert slots == [utc(2030, 3, 10, 6), utc(2030, 3, 10, 7)]
    assert len(set(slots)) == len(slots)


def test_summer_days_use_daylight_offset():
    rule = monday_rule(weekly_availability={"MON": (TimeBlock(time(9), time(10)),)})
    request = SlotRequest(start_date=date(2030, 7, 1), end_date=date(2030, 7, 1), duration_minutes=60)

    slots = engine_at(utc(2030, 6, 1)).find_slots(request, rule, [])

    assert slots == [utc(2030, 7, 1, 14)]


def test_missing_session_calendar_yields_no_slots():
    engine = AvailabilityEngine(None, clock=lambda: NEW_YEAR)

    assert engine.find_slots(monday_request(), monday_rule(), []) == []
    assert engine.find_slots(monday_request(), None, []) == []
    assert engine_at(NEW_YEAR).is_slot_available(utc(2030, 1, 7, 15), 60, None, []) is False


def test_returned_slots_never_touch_buffered_busy_time():
    rng = random.Random(7)
    rule = monday_rule(
        weekly_availability={"MON": (TimeBlock(time(7), time(20)),)},
        buffer_minutes=15,
        slot_increment_minutes=15,
        max_bookings_per_day=50,
    )
    busy = []
    for _ in range(6):
        start = utc(2030, 1, 7, 13) + timedelta(minutes=15 * rng.randrange(0, 48))
        busy.append(BusyInterval(start, start + timedelta(minutes=rng.choice([15, 30, 45, 60])), SESSIONS))

    slots = engine_at(NEW_YEAR).find_slots(monday_request(45), rule, busy)

    assert slots
    for slot in slots:
        assert not has_conflict(slot, slot + timedelta(minutes=45), busy, rule.buffer_minutes)


def test_point_check_matches_listing():
    engine = engine_at(NEW_YEAR)
    rule = monday_rule(buffer_minutes=30)
    busy = [BusyInterval(utc(2030, 1, 7, 15), utc(2030, 1, 7, 16), SESSIONS)]

    assert engine.is_slot_available(utc(2030, 1, 7, 17), 60, rule, busy) is True
    assert engine.is_slot_available(utc(2030, 1, 7, 16), 60, rule, busy) is False
    assert engine.is_slot_available(utc(2030, 1, 7, 17), 60, monday_rule(max_bookings_per_day=1), busy) is False


def test_rule_from_legacy_keys():
    rule = AvailabilityRule.from_dict(
        {
            "practitioner_timezone": "Europe/London",
            "buffer_time_minutes": 10,
            "weekly_availability": {"mon": [{"start": "13:00", "end": "15:00"}, {"start": "09:00", "end": "11:00"}]},
        }
    )

    assert rule.timezone == "Europe/London"
    assert rule.buffer_minutes == 10
    assert rule.max_bookings_per_day == 4
    assert [block.start for block in rule.weekly_availability["MON"]] == [time(9), time(13)]
