from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from slotflow.application.exceptions import ConfigurationError, ExternalServiceError
from slotflow.application.ports.calendar import CalendarBusyQueryPort
from slotflow.domain.entities.availability import BusyInterval


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants of local midnight on day and on the following day."""
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return start, end


class BusyIntervalAggregator:
    def __init__(
        self,
        busy_query: CalendarBusyQueryPort,
        session_calendar_id: str | None,
        personal_calendar_id: str | None = None,
    ) -> None:
        self._busy_query = busy_query
        self._session_calendar_id = session_calendar_id
        self._personal_calendar_id = personal_calendar_id
        self._logger = logging.getLogger(__name__)

    @property
    def session_calendar_id(self) -> str:
        if not self._session_calendar_id:
            raise ConfigurationError("Session calendar id is not configured")
        return self._session_calendar_id

    def calendar_ids(self) -> list[str]:
        ids = [self.session_calendar_id]
        if self._personal_calendar_id and self._personal_calendar_id != self._session_calendar_id:
            ids.append(self._personal_calendar_id)
        return ids

    async def fetch_busy(self, time_min: datetime, time_max: datetime) -> list[BusyInterval]:
        """
        Fetch busy intervals for every configured calendar with one batched query.
        The whole call fails if any calendar is missing from the answer.
        """
        calendar_ids = self.calendar_ids()
        self._logger.info(
            "Fetching busy intervals",
            extra={"calendar_id": ",".join(calendar_ids), "time_min": time_min.isoformat(), "time_max": time_max.isoformat()},
        )
        per_calendar = await self._busy_query.query_busy(calendar_ids, time_min, time_max)

        missing = [calendar_id for calendar_id in calendar_ids if calendar_id not in per_calendar]
        if missing:
            raise ExternalServiceError(f"Busy query returned no data for calendars: {missing}")

        intervals: list[BusyInterval] = []
        for calendar_id in calendar_ids:
            for start, end in per_calendar[calendar_id]:
                intervals.append(
                    BusyInterval(
                        start=start.astimezone(timezone.utc),
                        end=end.astimezone(timezone.utc),
                        source_calendar_id=calendar_id,
                    )
                )
        intervals.sort(key=lambda interval: (interval.start, interval.end))
        self._logger.info("Busy intervals fetched", extra={"count": len(intervals)})
        return intervals

    @staticmethod
    def count_busy_for_day(
        busy_intervals: list[BusyInterval],
        day: date,
        tz: ZoneInfo,
        source_calendar_id: str,
    ) -> int:
        """Count intervals from source_calendar_id that touch the practitioner-local day."""
        day_start, day_end = local_day_bounds(day, tz)
        return sum(
            1
            for interval in busy_intervals
            if interval.source_calendar_id == source_calendar_id
            and interval.start < day_end
            and interval.end > day_start
        )
