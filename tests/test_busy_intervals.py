"""
Tests for busy interval aggregation across the session and personal calendars.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from slotflow.application.exceptions import ConfigurationError, ExternalServiceError
from slotflow.application.ports.calendar import CalendarBusyQueryPort
from slotflow.application.use_cases.busy_intervals import BusyIntervalAggregator, local_day_bounds
from slotflow.domain.entities.availability import BusyInterval
from slotflow.infrastructure.calendar.mock_calendar import MockCalendar

CHICAGO = ZoneInfo("America/Chicago")


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class PartialBusyQuery(CalendarBusyQueryPort):
    """Answers for the session calendar only."""

    async def query_busy(self, calendar_ids, time_min, time_max):
        return {calendar_ids[0]: []}


def test_one_query_covers_both_calendars():
    calendar = MockCalendar(session_calendar_id="sessions")
    calendar.add_busy("personal", utc(2030, 1, 7, 18), utc(2030, 1, 7, 19))
    calendar.add_busy("sessions", utc(2030, 1, 7, 15), utc(2030, 1, 7, 16))
    aggregator = BusyIntervalAggregator(calendar, "sessions", "personal")

    busy = asyncio.run(aggregator.fetch_busy(utc(2030, 1, 7), utc(2030, 1, 8)))

    assert calendar.busy_queries == 1
    assert [interval.source_calendar_id for interval in busy] == ["sessions", "personal"]
    assert busy[0].start == utc(2030, 1, 7, 15)


def test_unavailable_calendar_fails_the_whole_fetch():
    calendar = MockCalendar(session_calendar_id="sessions")
    calendar.unavailable_calendars.add("personal")
    aggregator = BusyIntervalAggregator(calendar, "sessions", "personal")

    with pytest.raises(ExternalServiceError):
        asyncio.run(aggregator.fetch_busy(utc(2030, 1, 7), utc(2030, 1, 8)))


def test_calendar_missing_from_answer_fails_the_whole_fetch():
    aggregator = BusyIntervalAggregator(PartialBusyQuery(), "sessions", "personal")

    with pytest.raises(ExternalServiceError):
        asyncio.run(aggregator.fetch_busy(utc(2030, 1, 7), utc(2030, 1, 8)))


def test_missing_session_calendar_is_a_configuration_error():
    aggregator = BusyIntervalAggregator(MockCalendar(), None)

    with pytest.raises(ConfigurationError):
        aggregator.calendar_ids()


def test_same_calendar_is_queried_once():
    aggregator = BusyIntervalAggregator(MockCalendar(), "sessions", "sessions")

    assert aggregator.calendar_ids() == ["sessions"]


def test_local_day_bounds_follow_timezone():
    start, end = local_day_bounds(date(2030, 1, 7), CHICAGO)

    assert start == utc(2030, 1, 7, 6)
    assert end == utc(2030, 1, 8, 6)


def test_day_count_uses_local_day_and_source_calendar():
    busy = [
        # 23:30 local on Sunday, ends after midnight Monday: touches both days.
        BusyInterval(utc(2030, 1, 7, 5, 30), utc(2030, 1, 7, 6, 30), "sessions"),
        BusyInterval(utc(2030, 1, 7, 15), utc(2030, 1, 7, 16), "sessions"),
        BusyInterval(utc(2030, 1, 7, 17), utc(2030, 1, 7, 18), "personal"),
        # 01:00 UTC Tuesday is still Monday evening in Chicago.
        BusyInterval(utc(2030, 1, 8, 1), utc(2030, 1, 8, 2), "sessions"),
    ]

    monday = BusyIntervalAggregator.count_busy_for_day(busy, date(2030, 1, 7), CHICAGO, "sessions")
    sunday = BusyIntervalAggregator.count_busy_for_day(busy, date(2030, 1, 6), CHICAGO, "sessions")

    assert monday == 3
    assert sunday == 1
