from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from slotflow.domain.entities.booking import InviteStatus, Session, SessionInvite


class BookingStorePort(ABC):
    @abstractmethod
    async def create_session(
        self,
        user_id: str,
        session_type_id: str,
        appointment_datetime: datetime,
        first_name: str | None = None,
        last_name: str | None = None,
        liability_form_data: dict[str, Any] | None = None,
    ) -> Session:
        raise NotImplementedError

    @abstractmethod
    async def update_session(self, session_id: str, **changes: Any) -> Session:
        """Raises NotFound if the session does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None:
        raise NotImplementedError

    @abstractmethod
    async def create_invite(self, parent_session_id: str) -> SessionInvite:
        raise NotImplementedError

    @abstractmethod
    async def find_invite(self, invite_token: str) -> SessionInvite | None:
        raise NotImplementedError

    @abstractmethod
    async def update_invite(self, invite_token: str, **changes: Any) -> SessionInvite:
        """Raises NotFound if the invite does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def count_invites(self, parent_session_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_invites_by_status(self, parent_session_id: str, status: InviteStatus) -> int:
        raise NotImplementedError
