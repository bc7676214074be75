from __future__ import annotations

import asyncio
import secrets
import time
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any

from slotflow.application.exceptions import NotFound
from slotflow.application.ports.booking_store import BookingStorePort
from slotflow.application.ports.idempotency_store import IdempotencyStorePort
from slotflow.domain.entities.booking import InviteStatus, Session, SessionInvite


def new_invite_token() -> str:
    return secrets.token_urlsafe(24)


class MemoryBookingStore(BookingStorePort):
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._invites: dict[str, SessionInvite] = {}
        self.session_writes = 0

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

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
        self._sessions[session.id] = session
        self.session_writes += 1
        return session

    async def update_session(self, session_id: str, **changes: Any) -> Session:
        if session_id not in self._sessions:
            raise NotFound(f"Session {session_id} not found")
        session = replace(self._sessions[session_id], **changes)
        self._sessions[session_id] = session
        return session

    async def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def create_invite(self, parent_session_id: str) -> SessionInvite:
        invite = SessionInvite(invite_token=new_invite_token(), parent_session_id=parent_session_id)
        self._invites[invite.invite_token] = invite
        return invite

    async def find_invite(self, invite_token: str) -> SessionInvite | None:
        return self._invites.get(invite_token)

    async def update_invite(self, invite_token: str, **changes: Any) -> SessionInvite:
        if invite_token not in self._invites:
            raise NotFound(f"Invite {invite_token} not found")
        invite = replace(self._invites[invite_token], **changes)
        self._invites[invite_token] = invite
        return invite

    async def count_invites(self, parent_session_id: str) -> int:
        return sum(1 for invite in self._invites.values() if invite.parent_session_id == parent_session_id)

    async def count_invites_by_status(self, parent_session_id: str, status: InviteStatus) -> int:
        return sum(
            1
            for invite in self._invites.values()
            if invite.parent_session_id == parent_session_id and invite.status is status
        )


class MemoryIdempotencyStore(IdempotencyStorePort):
    """Single-process idempotency record. Only valid when one worker serves all requests."""

    def __init__(self, clock=time.monotonic) -> None:
        self._entries: dict[str, tuple[float, dict[str, Any] | None]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> tuple[float, dict[str, Any] | None] | None:
        entry = self._entries.get(key)
        if entry is not None and entry[0] <= self._clock():
            del self._entries[key]
            return None
        return entry

    async def claim(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._entries[key] = (self._clock() + ttl_seconds, None)
            return True

    async def get_result(self, key: str) -> dict[str, Any] | None:
        entry = self._live(key)
        return entry[1] if entry is not None else None

    async def save_result(self, key: str, result: dict[str, Any], ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, result)

    async def release(self, key: str) -> None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[1] is None:
                del self._entries[key]
