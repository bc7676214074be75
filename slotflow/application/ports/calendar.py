from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from slotflow.domain.entities.calendar_event import CalendarEvent


class CalendarBusyQueryPort(ABC):
    @abstractmethod
    async def query_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
    ) -> dict[str, list[tuple[datetime, datetime]]]:
        """
        Return busy periods per calendar for [time_min, time_max) in a single request.
        Raises ExternalServiceError if any calendar could not be queried.
        """
        raise NotImplementedError


class CalendarEventsPort(ABC):
    @abstractmethod
    async def create_event(
        self,
        start: datetime,
        end: datetime,
        summary: str,
        description: str | None = None,
        status: str = "confirmed",
    ) -> CalendarEvent:
        """Create an event on the session calendar."""
        raise NotImplementedError

    @abstractmethod
    async def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
    ) -> CalendarEvent:
        raise NotImplementedError

    @abstractmethod
    async def delete_event(self, event_id: str) -> bool:
        """Delete an event. Returns True if it is gone, including when it was already gone."""
        raise NotImplementedError

    @abstractmethod
    async def get_event(self, event_id: str) -> CalendarEvent | None:
        raise NotImplementedError
