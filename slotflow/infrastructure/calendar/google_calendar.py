from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from slotflow.application.exceptions import ExternalServiceError
from slotflow.application.ports.calendar import CalendarBusyQueryPort, CalendarEventsPort
from slotflow.core.config import settings
from slotflow.domain.entities.calendar_event import CalendarEvent


def _to_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


class GoogleCalendar(CalendarBusyQueryPort, CalendarEventsPort):
    """Google Calendar v3 over REST. Events are written to the session calendar."""

    def __init__(
        self,
        access_token: str | None = None,
        calendar_id: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = access_token or settings.GOOGLE_CALENDAR_ACCESS_TOKEN
        self._calendar_id = calendar_id or settings.SESSION_CALENDAR_ID
        self._base_url = (base_url or settings.GOOGLE_CALENDAR_BASE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._logger = logging.getLogger(__name__)

        if not self._access_token:
            raise ValueError("GOOGLE_CALENDAR_ACCESS_TOKEN is required for Google Calendar")
        if not self._calendar_id:
            raise ValueError("SESSION_CALENDAR_ID is required for Google Calendar")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}", "Content-Type": "application/json"}

    def _events_url(self, event_id: str | None = None) -> str:
        url = f"{self._base_url}/calendars/{self._calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            self._logger.error("Calendar request failed", extra={"calendar_id": self._calendar_id, "error": str(e)})
            raise ExternalServiceError(f"Calendar request failed: {e}") from e

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            self._logger.error(
                "Calendar API error",
                extra={"calendar_id": self._calendar_id, "error": f"{action}: {response.status_code}"},
            )
            raise ExternalServiceError(f"Calendar {action} failed with status {response.status_code}")

    def _to_event(self, data: dict[str, Any]) -> CalendarEvent:
        start = data.get("start", {})
        end = data.get("end", {})
        return CalendarEvent(
            id=str(data["id"]),
            start=_parse_rfc3339(start.get("dateTime") or start["date"]),
            end=_parse_rfc3339(end.get("dateTime") or end["date"]),
            summary=data.get("summary", ""),
            description=data.get("description"),
            status=data.get("status", "confirmed"),
        )

    async def query_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
    ) -> dict[str, list[tuple[datetime, datetime]]]:
        payload = {
            "timeMin": _to_rfc3339(time_min),
            "timeMax": _to_rfc3339(time_max),
            "items": [{"id": calendar_id} for calendar_id in calendar_ids],
        }
        response = await self._request("POST", f"{self._base_url}/freeBusy", json=payload)
        self._raise_for_status(response, "freeBusy")

        calendars = response.json().get("calendars", {})
        result: dict[str, list[tuple[datetime, datetime]]] = {}
        for calendar_id in calendar_ids:
            entry = calendars.get(calendar_id)
            if entry is None:
                continue
            if entry.get("errors"):
                reasons = ", ".join(str(err.get("reason")) for err in entry["errors"])
                raise ExternalServiceError(f"Free/busy unavailable for {calendar_id}: {reasons}")
            result[calendar_id] = [
                (_parse_rfc3339(period["start"]), _parse_rfc3339(period["end"]))
                for period in entry.get("busy", [])
            ]
        return result

    async def create_event(
        self,
        start: datetime,
        end: datetime,
        summary: str,
        description: str | None = None,
        status: str = "confirmed",
    ) -> CalendarEvent:
        payload = {
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": _to_rfc3339(start)},
            "end": {"dateTime": _to_rfc3339(end)},
            "status": status,
        }
        response = await self._request("POST", self._events_url(), json=payload)
        self._raise_for_status(response, "event insert")
        event = self._to_event(response.json())
        self._logger.info("Calendar event created", extra={"event_id": event.id, "calendar_id": self._calendar_id})
        return event

    async def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
    ) -> CalendarEvent:
        payload: dict[str, Any] = {}
        if summary is not None:
            payload["summary"] = summary
        if description is not None:
            payload["description"] = description
        response = await self._request("PATCH", self._events_url(event_id), json=payload)
        self._raise_for_status(response, "event patch")
        return self._to_event(response.json())

    async def delete_event(self, event_id: str) -> bool:
        response = await self._request("DELETE", self._events_url(event_id))
        if response.status_code in (404, 410):
            self._logger.info("Calendar event already gone", extra={"event_id": event_id})
            return True
        self._raise_for_status(response, "event delete")
        self._logger.info("Calendar event deleted", extra={"event_id": event_id})
        return True

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        response = await self._request("GET", self._events_url(event_id))
        if response.status_code in (404, 410):
            return None
        self._raise_for_status(response, "event get")
        data = response.json()
        if data.get("status") == "cancelled":
            return None
        return self._to_event(data)
