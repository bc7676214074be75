from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from slotflow.application.exceptions import ExternalServiceError
from slotflow.application.ports.calendar import CalendarBusyQueryPort, CalendarEventsPort
from slotflow.domain.entities.calendar_event import CalendarEvent


class MockCalendar(CalendarBusyQueryPort, CalendarEventsPort):
    """
    In-process calendar for dev and tests. Events live on the session
    calendar; other calendars can be seeded with busy blocks directly.
    """

    def __init__(self, session_calendar_id: str = "sessions") -> None:
        self.session_calendar_id = session_calendar_id
        self._events: dict[str, CalendarEvent] = {}
        self._busy: dict[str, list[tuple[datetime, datetime]]] = {session_calendar_id: []}
        self._counter = 0
        self.unavailable_calendars: set[str] = set()
        self.fail_writes = False
        self.busy_queries = 0
        self._logger = logging.getLogger(__name__)

    def add_busy(self, calendar_id: str, start: datetime, end: datetime) -> None:
        self._busy.setdefault(calendar_id, []).append((start, end))

    @property
    def events(self) -> list[CalendarEvent]:
        return list(self._events.values())

    async def query_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
    ) -> dict[str, list[tuple[datetime, datetime]]]:
        self.busy_queries += 1
        result: dict[str, list[tuple[datetime, datetime]]] = {}
        for calendar_id in calendar_ids:
            if calendar_id in self.unavailable_calendars:
                raise ExternalServiceError(f"Free/busy unavailable for {calendar_id}")
            periods = list(self._busy.get(calendar_id, []))
            if calendar_id == self.session_calendar_id:
                periods.extend((event.start, event.end) for event in self._events.values())
            result[calendar_id] = [(start, end) for start, end in periods if start < time_max and end > time_min]
        return result

    async def create_event(
        self,
        start: datetime,
        end: datetime,
        summary: str,
        description: str | None = None,
        status: str = "confirmed",
    ) -> CalendarEvent:
        if self.fail_writes:
            raise ExternalServiceError("Mock calendar is refusing writes")
        self._counter += 1
        event = CalendarEvent(
            id=f"mock_event_{self._counter}",
            start=start,
            end=end,
            summary=summary,
            description=description,
            status=status,
        )
        self._events[event.id] = event
        self._logger.info(
            "Mock calendar event created",
            extra={"event_id": event.id, "start": start.isoformat(), "end": end.isoformat()},
        )
        return event

    async def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
    ) -> CalendarEvent:
        event = self._events.get(event_id)
        if event is None:
            raise ExternalServiceError(f"Event {event_id} not found")
        event = replace(
            event,
            summary=event.summary if summary is None else summary,
            description=event.description if description is None else description,
        )
        self._events[event_id] = event
        return event

    async def delete_event(self, event_id: str) -> bool:
        if self._events.pop(event_id, None) is not None:
            self._logger.info("Mock calendar event deleted", extra={"event_id": event_id})
        return True

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        return self._events.get(event_id)
