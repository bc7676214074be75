from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from slotflow.application.exceptions import ConfigurationError
from slotflow.application.use_cases.busy_intervals import BusyIntervalAggregator
from slotflow.domain.entities.availability import AvailabilityRule, BusyInterval, SlotRequest, TimeBlock


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def has_conflict(
    start: datetime,
    end: datetime,
    busy_intervals: Iterable[BusyInterval],
    buffer_minutes: int,
) -> bool:
    """True if [start, end) overlaps any busy interval inflated by buffer_minutes on both sides."""
    return any(interval.overlaps(start, end, buffer_minutes) for interval in busy_intervals)


class AvailabilityEngine:
    """
    Turns a weekly availability rule plus busy intervals into bookable start instants.

    All comparisons happen on aware UTC instants. Local wall-clock moments are
    converted through the rule's timezone first, so DST transitions inside a
    day need no special handling.
    """

    def __init__(
        self,
        primary_calendar_id: str | None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._primary_calendar_id = primary_calendar_id
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def find_slots(
        self,
        request: SlotRequest,
        rule: AvailabilityRule | None,
        busy_intervals: list[BusyInterval],
    ) -> list[datetime]:
        try:
            rule = self._require_config(rule)
        except ConfigurationError as e:
            self._logger.error("Cannot compute slots", extra={"error": str(e)})
            return []

        tz = rule.tz
        now = self._clock()
        earliest_bookable = now + timedelta(hours=rule.min_notice_hours)
        earliest_day = earliest_bookable.astimezone(tz).date()
        latest_day = now.astimezone(tz).date() + timedelta(days=rule.max_advance_days)
        duration = timedelta(minutes=request.duration_minutes)

        slots: list[datetime] = []
        day = request.start_date
        while day <= request.end_date:
            if day < earliest_day or day > latest_day:
                self._logger.debug("Day outside booking window", extra={"day": day.isoformat()})
            else:
                slots.extend(self._slots_for_day(day, rule, tz, duration, earliest_bookable, busy_intervals))
            day += timedelta(days=1)

        result = sorted(set(slots))
        self._logger.info(
            "Slots computed",
            extra={"count": len(result), "start_date": request.start_date.isoformat(), "end_date": request.end_date.isoformat()},
        )
        return result

    def is_slot_available(
        self,
        start: datetime,
        duration_minutes: int,
        rule: AvailabilityRule | None,
        busy_intervals: list[BusyInterval],
    ) -> bool:
        """
        Point-in-time re-check of a single slot against the same overlap test
        and daily capacity used for listing.
        """
        try:
            rule = self._require_config(rule)
        except ConfigurationError as e:
            self._logger.error("Cannot check slot", extra={"error": str(e)})
            return False

        start = start.astimezone(timezone.utc)
        end = start + timedelta(minutes=duration_minutes)
        day = start.astimezone(rule.tz).date()
        if self._day_is_full(day, rule, busy_intervals):
            self._logger.info("Slot day is at capacity", extra={"slot": start.isoformat()})
            return False
        if has_conflict(start, end, busy_intervals, rule.buffer_minutes):
            self._logger.info("Slot conflicts with busy time", extra={"slot": start.isoformat()})
            return False
        return True

    def _require_config(self, rule: AvailabilityRule | None) -> AvailabilityRule:
        if rule is None:
            raise ConfigurationError("No availability rule")
        if not self._primary_calendar_id:
            raise ConfigurationError("Session calendar id is not configured")
        return rule

    def _day_is_full(self, day: date, rule: AvailabilityRule, busy_intervals: list[BusyInterval]) -> bool:
        booked = BusyIntervalAggregator.count_busy_for_day(busy_intervals, day, rule.tz, self._primary_calendar_id)
        return booked >= rule.max_bookings_per_day

    def _slots_for_day(
        self,
        day: date,
        rule: AvailabilityRule,
        tz: ZoneInfo,
        duration: timedelta,
        earliest_bookable: datetime,
        busy_intervals: list[BusyInterval],
    ) -> list[datetime]:
        blocks = rule.blocks_for(day)
        if not blocks:
            return []
        if self._day_is_full(day, rule, busy_intervals):
            self._logger.info("Max bookings reached", extra={"day": day.isoformat()})
            return []

        accepted: list[datetime] = []
        for block in blocks:
            accepted.extend(self._slots_for_block(day, block, rule, tz, duration, earliest_bookable, busy_intervals))
        return accepted

    def _slots_for_block(
        self,
        day: date,
        block: TimeBlock,
        rule: AvailabilityRule,
        tz: ZoneInfo,
        duration: timedelta,
        earliest_bookable: datetime,
        busy_intervals: list[BusyInterval],
    ) -> list[datetime]:
        step = timedelta(minutes=rule.slot_increment_minutes)
        # Stepping happens on naive local wall-clock time; each candidate is
        # then pinned to the zone and converted to an instant.
        candidate = datetime.combine(day, block.start)
        local_end = datetime.combine(day, block.end)
        block_end = local_end.replace(tzinfo=tz).astimezone(timezone.utc)

        accepted: list[datetime] = []
        while candidate < local_end:
            start = candidate.replace(tzinfo=tz).astimezone(timezone.utc)
            candidate += step
            if start < earliest_bookable:
                continue
            end = start + duration
            if end > block_end:
                break
            if has_conflict(start, end, busy_intervals, rule.buffer_minutes):
                continue
            accepted.append(start)
        return accepted
