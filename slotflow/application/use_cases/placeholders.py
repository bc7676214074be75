from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from slotflow.application.exceptions import BusinessRuleViolation
from slotflow.application.ports.calendar import CalendarEventsPort
from slotflow.application.ports.session_types import SessionTypeCatalogPort
from slotflow.application.use_cases.slot_listing import SlotListingService
from slotflow.domain.entities.calendar_event import CalendarEvent

PLACEHOLDER_PREFIX = "PLACEHOLDER: "


def is_hold_for(event: CalendarEvent | None, start: datetime, end: datetime) -> bool:
    """True only for a tentative placeholder covering exactly [start, end)."""
    return (
        event is not None
        and event.summary.startswith(PLACEHOLDER_PREFIX)
        and event.status == "tentative"
        and event.start == start
        and event.end == end
    )


@dataclass(frozen=True)
class Placeholder:
    placeholder_id: str
    expires_at: datetime


class PlaceholderService:
    """
    Short-lived tentative holds on the session calendar. A hold blocks the
    slot in free/busy while the client fills in the booking forms.
    """

    def __init__(
        self,
        catalog: SessionTypeCatalogPort,
        slots: SlotListingService,
        calendar: CalendarEventsPort,
        ttl_minutes: int = 15,
    ) -> None:
        self._catalog = catalog
        self._slots = slots
        self._calendar = calendar
        self._ttl = timedelta(minutes=ttl_minutes)
        self._logger = logging.getLogger(__name__)

    async def create_placeholder(self, user_id: str, session_type_id: str, start: datetime) -> Placeholder:
        session_type = self._catalog.get_session_type(session_type_id)
        if session_type is None or not session_type.active:
            raise BusinessRuleViolation("Session type not found", code="session_type_not_found")
        start = start.astimezone(timezone.utc)
        if not await self._slots.check_slot(start, session_type.duration_minutes):
            raise BusinessRuleViolation(
                "Sorry, that time slot was just taken. Please choose another time.", code="slot_taken"
            )

        event = await self._calendar.create_event(
            start=start,
            end=start + timedelta(minutes=session_type.duration_minutes),
            summary=f"{PLACEHOLDER_PREFIX}{session_type.label}",
            description=f"Temporary hold for user {user_id}",
            status="tentative",
        )
        expires_at = datetime.now(timezone.utc) + self._ttl
        self._logger.info(
            "Placeholder created",
            extra={"user_id": user_id, "event_id": event.id, "slot": start.isoformat()},
        )
        return Placeholder(placeholder_id=event.id, expires_at=expires_at)

    async def delete_placeholder(self, placeholder_id: str) -> bool:
        deleted = await self._calendar.delete_event(placeholder_id)
        self._logger.info("Placeholder deleted", extra={"event_id": placeholder_id})
        return deleted
