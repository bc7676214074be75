from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any


class FlowType(str, Enum):
    PRIMARY_BOOKING = "primary_booking"
    FRIEND_INVITE = "friend_invite"


class FlowStep(str, Enum):
    INITIAL = "initial"
    AWAITING_WAIVER = "awaiting_waiver"
    AWAITING_FRIEND_INVITES = "awaiting_friend_invites"
    FINALIZE_BOOKING = "finalize_booking"
    AWAITING_JOIN_DECISION = "awaiting_join_decision"
    AWAITING_FRIEND_WAIVER = "awaiting_friend_waiver"
    COMPLETED = "completed"


VALID_STEPS: dict[FlowType, frozenset[FlowStep]] = {
    FlowType.PRIMARY_BOOKING: frozenset(
        {
            FlowStep.INITIAL,
            FlowStep.AWAITING_WAIVER,
            FlowStep.FINALIZE_BOOKING,
            FlowStep.AWAITING_FRIEND_INVITES,
            FlowStep.COMPLETED,
        }
    ),
    FlowType.FRIEND_INVITE: frozenset(
        {
            FlowStep.AWAITING_JOIN_DECISION,
            FlowStep.AWAITING_FRIEND_WAIVER,
            FlowStep.COMPLETED,
        }
    ),
}


class ActionType(str, Enum):
    REDIRECT = "REDIRECT"
    FINALIZE = "FINALIZE"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class FlowState:
    user_id: str
    flow_type: FlowType
    current_step: FlowStep
    session_type_id: str
    appointment_datetime_iso: str
    placeholder_id: str | None = None
    invite_token: str | None = None
    parent_session_id: str | None = None
    session_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    liability_form_data: dict[str, Any] | None = None
    # Unix timestamp, filled in by the token codec on decode.
    expires_at: int | None = field(default=None, compare=False)

    def advance(self, step: FlowStep, **changes: Any) -> "FlowState":
        return replace(self, current_step=step, expires_at=None, **changes)

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("expires_at")
        payload["flow_type"] = self.flow_type.value
        payload["current_step"] = self.current_step.value
        return {key: value for key, value in payload.items() if value is not None}

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "FlowState":
        known = {f.name for f in fields(FlowState)}
        data = {key: value for key, value in payload.items() if key in known}
        data["flow_type"] = FlowType(data["flow_type"])
        data["current_step"] = FlowStep(data["current_step"])
        data["user_id"] = str(data["user_id"])
        return FlowState(**data)


@dataclass(frozen=True)
class NextAction:
    type: ActionType
    url: str | None = None
    message: str | None = None
    code: str | None = None

    @staticmethod
    def error(message: str, code: str) -> "NextAction":
        return NextAction(type=ActionType.ERROR, message=message, code=code)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        for key in ("url", "message", "code"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "NextAction":
        return NextAction(
            type=ActionType(data["type"]),
            url=data.get("url"),
            message=data.get("message"),
            code=data.get("code"),
        )


@dataclass(frozen=True)
class FlowResponse:
    token: str | None
    next_step: NextAction
    details: dict[str, Any] | None = None

    @staticmethod
    def error(message: str, code: str) -> "FlowResponse":
        return FlowResponse(token=None, next_step=NextAction.error(message, code))


@dataclass(frozen=True)
class FinalizeResult:
    success: bool
    next_step: NextAction
    session_id: str | None = None
    token: str | None = None
    needs_manual_review: bool = False
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "session_id": self.session_id,
            "token": self.token,
            "next_step": self.next_step.to_dict(),
            "needs_manual_review": self.needs_manual_review,
            "message": self.message,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "FinalizeResult":
        return FinalizeResult(
            success=bool(data["success"]),
            session_id=data.get("session_id"),
            token=data.get("token"),
            next_step=NextAction.from_dict(data["next_step"]),
            needs_manual_review=bool(data.get("needs_manual_review", False)),
            message=data.get("message"),
        )
