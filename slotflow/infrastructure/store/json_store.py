from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from slotflow.application.exceptions import ExternalServiceError, NotFound
from slotflow.application.ports.booking_store import BookingStorePort
from slotflow.domain.entities.booking import InviteStatus, Session, SessionInvite, SessionStatus
from slotflow.infrastructure.store.memory_store import new_invite_token


class JsonBookingStore(BookingStorePort):
    """Sessions and invites kept in one JSON file, rewritten atomically on every change."""

    def __init__(self, data_dir: str = "./data/bookings") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = self._data_dir / "bookings.json"
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _load(self) -> dict[str, Any]:
        """Load store data from JSON file, return empty tables if missing."""
        if not self._file_path.exists():
            return {"sessions": {}, "invites": {}, "version": 1}
        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            self._logger.error("Booking store unreadable", extra={"error": str(e)})
            raise ExternalServiceError(f"Booking store unreadable: {e}") from e
        data.setdefault("sessions", {})
        data.setdefault("invites", {})
        return data

    def _save(self, data: dict[str, Any]) -> None:
        temp_path = self._file_path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            # Atomic rename
            temp_path.replace(self._file_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ExternalServiceError(f"Booking store write failed: {e}") from e

    def _serialize_session(self, session: Session) -> dict[str, Any]:
        return {
            "id": session.id,
            "user_id": session.user_id,
            "session_type_id": session.session_type_id,
            "appointment_datetime": session.appointment_datetime.isoformat(),
            "status": session.status.value,
            "calendar_event_id": session.calendar_event_id,
            "first_name": session.first_name,
            "last_name": session.last_name,
            "liability_form_data": session.liability_form_data,
        }

    def _deserialize_session(self, data: dict[str, Any]) -> Session:
        return Session(
            id=data["id"],
            user_id=data["user_id"],
            session_type_id=data["session_type_id"],
            appointment_datetime=datetime.fromisoformat(data["appointment_datetime"]),
            status=SessionStatus(data.get("status", SessionStatus.CONFIRMED.value)),
            calendar_event_id=data.get("calendar_event_id"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            liability_form_data=data.get("liability_form_data"),
        )

    def _serialize_invite(self, invite: SessionInvite) -> dict[str, Any]:
        return {
            "invite_token": invite.invite_token,
            "parent_session_id": invite.parent_session_id,
            "status": invite.status.value,
            "friend_user_id": invite.friend_user_id,
            "first_name": invite.first_name,
            "last_name": invite.last_name,
            "liability_form_data": invite.liability_form_data,
        }

    def _deserialize_invite(self, data: dict[str, Any]) -> SessionInvite:
        return SessionInvite(
            invite_token=data["invite_token"],
            parent_session_id=data["parent_session_id"],
            status=InviteStatus(data.get("status", InviteStatus.PENDING.value)),
            friend_user_id=data.get("friend_user_id"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            liability_form_data=data.get("liability_form_data"),
        )

    async def create_session(
        self,
        user_id: str,
        session_type_id: str,
        appointment_datetime: datetime,
        first_name: str | None = None,
        last_name: str | None = None,
        liability_form_data: dict[str, Any] | None = None,
    ) -> Session:
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            session_type_id=session_type_id,
            appointment_datetime=appointment_datetime,
            first_name=first_name,
            last_name=last_name,
            liability_form_data=liability_form_data,
        )
        with self._lock:
            data = self._load()
            data["sessions"][session.id] = self._serialize_session(session)
            self._save(data)
        return session

    async def update_session(self, session_id: str, **changes: Any) -> Session:
        with self._lock:
            data = self._load()
            raw = data["sessions"].get(session_id)
            if raw is None:
                raise NotFound(f"Session {session_id} not found")
            current = self._serialize_session(self._deserialize_session(raw))
            current.update(self._serialize_session_changes(changes))
            session = self._deserialize_session(current)
            data["sessions"][session_id] = self._serialize_session(session)
            self._save(data)
        return session

    def _serialize_session_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        result = dict(changes)
        if isinstance(result.get("status"), SessionStatus):
            result["status"] = result["status"].value
        if isinstance(result.get("appointment_datetime"), datetime):
            result["appointment_datetime"] = result["appointment_datetime"].isoformat()
        return result

    async def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            raw = self._load()["sessions"].get(session_id)
        return self._deserialize_session(raw) if raw is not None else None

    async def create_invite(self, parent_session_id: str) -> SessionInvite:
        invite = SessionInvite(invite_token=new_invite_token(), parent_session_id=parent_session_id)
        with self._lock:
            data = self._load()
            data["invites"][invite.invite_token] = self._serialize_invite(invite)
            self._save(data)
        return invite

    async def find_invite(self, invite_token: str) -> SessionInvite | None:
        with self._lock:
            raw = self._load()["invites"].get(invite_token)
        return self._deserialize_invite(raw) if raw is not None else None

    async def update_invite(self, invite_token: str, **changes: Any) -> SessionInvite:
        with self._lock:
            data = self._load()
            raw = data["invites"].get(invite_token)
            if raw is None:
                raise NotFound(f"Invite {invite_token} not found")
            current = dict(raw)
            for key, value in changes.items():
                current[key] = value.value if isinstance(value, InviteStatus) else value
            invite = self._deserialize_invite(current)
            data["invites"][invite_token] = self._serialize_invite(invite)
            self._save(data)
        return invite

    async def count_invites(self, parent_session_id: str) -> int:
        with self._lock:
            invites = self._load()["invites"].values()
        return sum(1 for raw in invites if raw["parent_session_id"] == parent_session_id)

    async def count_invites_by_status(self, parent_session_id: str, status: InviteStatus) -> int:
        with self._lock:
            invites = self._load()["invites"].values()
        return sum(
            1
            for raw in invites
            if raw["parent_session_id"] == parent_session_id and raw.get("status") == status.value
        )
