from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from slotflow.application.exceptions import BusinessRuleViolation
from slotflow.application.ports.booking_store import BookingStorePort
from slotflow.application.use_cases.flow_steps import FlowStepHandlers, parse_instant
from slotflow.application.use_cases.flow_token import FlowTokenCodec
from slotflow.application.use_cases.flow_transitions import JOIN_SESSION_PATH, Transition, determine_next_step
from slotflow.domain.entities.booking import PRE_WAIVER_STATUSES, InviteStatus
from slotflow.domain.entities.flow import (
    ActionType,
    FinalizeResult,
    FlowResponse,
    FlowState,
    FlowStep,
    FlowType,
    NextAction,
)


@dataclass(frozen=True)
class StartPrimaryFlowRequest:
    user_id: str
    session_type_id: str
    appointment_datetime_iso: str
    placeholder_id: str | None = None


@dataclass(frozen=True)
class StartInviteFlowRequest:
    invite_token: str
    user_id: str


class BookingFlowManager:
    """
    Entry points of the booking saga. Flow state lives only in the signed
    token; every call decodes it, runs one step and hands back a new token.
    """

    STEP_WAIVER_SUBMISSION = "waiver_submission"
    STEP_FRIEND_ACCEPTANCE = "friend_invite_acceptance"
    STEP_FRIEND_DECLINE = "friend_decline"
    STEP_CREATE_INVITE = "create_invite"
    STEP_FINISH_INVITES = "finish_invites"

    def __init__(
        self,
        codec: FlowTokenCodec,
        handlers: FlowStepHandlers,
        store: BookingStorePort,
    ) -> None:
        self._codec = codec
        self._handlers = handlers
        self._store = store
        self._logger = logging.getLogger(__name__)

    async def start_primary_flow(self, request: StartPrimaryFlowRequest) -> FlowResponse:
        self._logger.info(
            "Starting primary booking flow",
            extra={"user_id": request.user_id, "session_type_id": request.session_type_id},
        )
        try:
            session_type = self._handlers.session_type_for(request.session_type_id)
            if not session_type.active:
                raise BusinessRuleViolation(
                    "Session type not found or is no longer available", code="session_type_not_found"
                )
            start = parse_instant(request.appointment_datetime_iso)
        except BusinessRuleViolation as e:
            self._logger.warning("Primary flow rejected", extra={"user_id": request.user_id, "error": str(e)})
            return FlowResponse.error(str(e), e.code)

        state = FlowState(
            user_id=str(request.user_id),
            flow_type=FlowType.PRIMARY_BOOKING,
            current_step=FlowStep.INITIAL,
            session_type_id=session_type.id,
            appointment_datetime_iso=start.isoformat(),
            placeholder_id=request.placeholder_id,
        )
        response = self._handlers.respond(state, determine_next_step(state, session_type))
        self._logger.info(
            "Primary booking flow started",
            extra={"user_id": state.user_id, "step": response.next_step.type.value},
        )
        return response

    async def start_invite_flow(self, request: StartInviteFlowRequest) -> FlowResponse:
        self._logger.info("Starting invite flow", extra={"user_id": request.user_id})
        invite = await self._store.find_invite(request.invite_token)
        if invite is None:
            return FlowResponse.error("Invite token is invalid or has expired", "invite_not_found")
        if invite.status not in PRE_WAIVER_STATUSES:
            return FlowResponse.error("Invite invalid or already processed", "invite_invalid")
        parent = await self._store.get_session(invite.parent_session_id)
        if parent is None:
            return FlowResponse.error("Invite token is invalid or has expired", "invite_not_found")

        if invite.status is InviteStatus.PENDING:
            await self._store.update_invite(invite.invite_token, status=InviteStatus.VIEWED_BY_FRIEND)

        state = FlowState(
            user_id=str(request.user_id),
            flow_type=FlowType.FRIEND_INVITE,
            current_step=FlowStep.AWAITING_JOIN_DECISION,
            session_type_id=parent.session_type_id,
            appointment_datetime_iso=parent.appointment_datetime.isoformat(),
            invite_token=invite.invite_token,
            parent_session_id=parent.id,
        )
        # The join page asks the friend to accept or decline before anything else.
        join = Transition(FlowStep.AWAITING_JOIN_DECISION, NextAction(ActionType.REDIRECT, url=JOIN_SESSION_PATH))
        return self._handlers.respond(state, join)

    async def continue_flow(self, token: str, step_id: str, data: dict[str, Any] | None = None) -> FlowResponse:
        """Run one step. Raises InvalidFlowToken for a bad token; rule violations come back as ERROR."""
        state = self._codec.decode(token)
        self._logger.info(
            "Continuing flow",
            extra={"user_id": state.user_id, "flow_type": state.flow_type.value, "step": step_id},
        )
        try:
            if step_id == self.STEP_WAIVER_SUBMISSION:
                if state.flow_type is FlowType.PRIMARY_BOOKING:
                    return await self._handlers.submit_primary_waiver(token, state, data)
                return await self._handlers.submit_friend_waiver(state, data)
            if step_id == self.STEP_FRIEND_ACCEPTANCE:
                return await self._handlers.accept_invite(state)
            if step_id == self.STEP_FRIEND_DECLINE:
                return await self._handlers.decline_invite(state)
            if step_id == self.STEP_CREATE_INVITE:
                return await self._handlers.create_invite(state)
            if step_id == self.STEP_FINISH_INVITES:
                return await self._handlers.finish_invites(state)
            raise BusinessRuleViolation(f"Unknown step: {step_id}", code="unknown_step")
        except BusinessRuleViolation as e:
            self._logger.warning(
                "Flow step rejected",
                extra={"user_id": state.user_id, "step": step_id, "reason": e.code},
            )
            return FlowResponse.error(str(e), e.code)

    async def finalize(self, token: str) -> FinalizeResult:
        """
        Commit a primary booking. Repeating the call with the same token
        returns the first result without writing anything again.
        """
        state = self._codec.decode(token)
        try:
            result = await self._handlers.finalize(token, state)
        except BusinessRuleViolation as e:
            self._logger.warning("Finalize rejected", extra={"user_id": state.user_id, "reason": e.code})
            return FinalizeResult(success=False, next_step=NextAction.error(str(e), e.code), message=str(e))
        self._logger.info(
            "Finalize finished",
            extra={"user_id": state.user_id, "session_id": result.session_id, "reason": result.next_step.code},
        )
        return result
