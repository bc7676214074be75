from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    CONFIRMED = "confirmed"
    NEEDS_MANUAL_REVIEW = "needs_manual_review"


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED_BY_FRIEND = "accepted_by_friend"
    VIEWED_BY_FRIEND = "viewed_by_friend"
    WAIVER_COMPLETED_BY_FRIEND = "waiver_completed_by_friend"
    DECLINED = "declined"


# An invite may only move forward from one of these.
PRE_WAIVER_STATUSES = frozenset(
    {InviteStatus.PENDING, InviteStatus.ACCEPTED_BY_FRIEND, InviteStatus.VIEWED_BY_FRIEND}
)


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    session_type_id: str
    appointment_datetime: datetime
    status: SessionStatus = SessionStatus.CONFIRMED
    calendar_event_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    liability_form_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class SessionInvite:
    invite_token: str
    parent_session_id: str
    status: InviteStatus = InviteStatus.PENDING
    friend_user_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    liability_form_data: dict[str, Any] | None = None
