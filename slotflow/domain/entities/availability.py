from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Index matches date.weekday(): Monday is 0.
WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def parse_wall_clock(value: str) -> time:
    """Parse an "HH:MM" wall-clock string."""
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid wall-clock time: {value!r}") from e


@dataclass(frozen=True)
class TimeBlock:
    start: time
    end: time

    def __post_init__(self) -> None:
        if not self.start < self.end:
            raise ValueError(f"Availability block must start before it ends: {self.start}-{self.end}")

    @staticmethod
    def from_dict(raw: dict[str, str]) -> "TimeBlock":
        return TimeBlock(start=parse_wall_clock(raw["start"]), end=parse_wall_clock(raw["end"]))


@dataclass(frozen=True)
class AvailabilityRule:
    weekly_availability: dict[str, tuple[TimeBlock, ...]]
    timezone: str
    max_advance_days: int = 60
    min_notice_hours: int = 24
    buffer_minutes: int = 30
    max_bookings_per_day: int = 4
    slot_increment_minutes: int = 15

    def __post_init__(self) -> None:
        for name in ("max_advance_days", "min_notice_hours", "buffer_minutes", "max_bookings_per_day"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.slot_increment_minutes <= 0:
            raise ValueError("slot_increment_minutes must be > 0")
        unknown = set(self.weekly_availability) - set(WEEKDAY_CODES)
        if unknown:
            raise ValueError(f"Unknown weekday codes: {sorted(unknown)}")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone}") from e

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def blocks_for(self, day: date) -> tuple[TimeBlock, ...]:
        return self.weekly_availability.get(WEEKDAY_CODES[day.weekday()], ())

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "AvailabilityRule":
        """
        Build a rule from its stored JSON shape.
        Accepts both the short keys and the legacy column names
        (practitioner_timezone, buffer_time_minutes).
        """
        weekly_raw = raw.get("weekly_availability") or {}
        weekly = {
            code.upper(): tuple(
                sorted((TimeBlock.from_dict(block) for block in blocks), key=lambda b: b.start)
            )
            for code, blocks in weekly_raw.items()
        }
        timezone = raw.get("timezone") or raw.get("practitioner_timezone")
        if not timezone:
            raise ValueError("Availability rule has no timezone")

        def _int(*keys: str, default: int) -> int:
            for key in keys:
                if raw.get(key) is not None:
                    return int(raw[key])
            return default

        return AvailabilityRule(
            weekly_availability=weekly,
            timezone=timezone,
            max_advance_days=_int("max_advance_days", default=60),
            min_notice_hours=_int("min_notice_hours", default=24),
            buffer_minutes=_int("buffer_minutes", "buffer_time_minutes", default=30),
            max_bookings_per_day=_int("max_bookings_per_day", default=4),
            slot_increment_minutes=_int("slot_increment_minutes", default=15),
        )


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    source_calendar_id: str

    def overlaps(self, start: datetime, end: datetime, padding_minutes: int = 0) -> bool:
        """Half-open overlap test against [start, end), with the busy span padded on both sides."""
        pad = timedelta(minutes=padding_minutes)
        return start < self.end + pad and end > self.start - pad


@dataclass(frozen=True)
class SlotRequest:
    start_date: date
    end_date: date
    duration_minutes: int
