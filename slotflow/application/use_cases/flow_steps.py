from __future__ import annotations

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from slotflow.application.exceptions import (
    BusinessRuleViolation,
    ConsistencyError,
    ExternalServiceError,
    NotFound,
)
from slotflow.application.ports.booking_store import BookingStorePort
from slotflow.application.ports.calendar import CalendarEventsPort
from slotflow.application.ports.idempotency_store import IdempotencyStorePort
from slotflow.application.ports.notifier import NotifierPort
from slotflow.application.ports.session_types import SessionTypeCatalogPort
from slotflow.application.use_cases.flow_token import FlowTokenCodec
from slotflow.application.use_cases.flow_transitions import INVITE_FRIENDS_PATH, Transition, determine_next_step
from slotflow.application.use_cases.placeholders import is_hold_for
from slotflow.application.use_cases.slot_listing import SlotListingService
from slotflow.domain.entities.booking import (
    PRE_WAIVER_STATUSES,
    InviteStatus,
    Session,
    SessionInvite,
    SessionStatus,
)
from slotflow.domain.entities.flow import (
    ActionType,
    FinalizeResult,
    FlowResponse,
    FlowState,
    FlowStep,
    FlowType,
    NextAction,
)
from slotflow.domain.entities.session_type import SessionType

GROUP_TITLE_PREFIX = "GROUP - "
SLOT_TAKEN_MESSAGE = "Sorry, that time slot was just taken. Please choose another time."
MANUAL_REVIEW_MESSAGE = (
    "Your booking is confirmed. We hit a problem adding it to the calendar and an admin has been notified."
)


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant; a trailing Z is accepted. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise BusinessRuleViolation(f"Invalid appointment time: {value!r}", code="validation") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def token_key(scope: str, token: str) -> str:
    return f"{scope}:{hashlib.sha256(token.encode('utf-8')).hexdigest()}"


@dataclass(frozen=True)
class WaiverData:
    first_name: str
    last_name: str
    liability_form_data: dict[str, Any]

    @staticmethod
    def from_form(data: dict[str, Any] | None) -> "WaiverData":
        data = data or {}
        first_name = str(data.get("firstName") or data.get("first_name") or "").strip()
        last_name = str(data.get("lastName") or data.get("last_name") or "").strip()
        form = data.get("liabilityFormData") or data.get("liability_form_data")
        missing = [
            name
            for name, value in (("firstName", first_name), ("lastName", last_name), ("liabilityFormData", form))
            if not value
        ]
        if missing:
            raise BusinessRuleViolation(f"Missing waiver fields: {', '.join(missing)}", code="validation")
        if not isinstance(form, dict):
            raise BusinessRuleViolation("liabilityFormData must be an object", code="validation")
        return WaiverData(first_name=first_name, last_name=last_name, liability_form_data=form)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class FlowStepHandlers:
    """Side-effecting step handlers of the booking saga."""

    def __init__(
        self,
        codec: FlowTokenCodec,
        catalog: SessionTypeCatalogPort,
        slots: SlotListingService,
        calendar: CalendarEventsPort,
        store: BookingStorePort,
        notifier: NotifierPort,
        idempotency: IdempotencyStorePort,
        base_url: str = "",
        idempotency_ttl_seconds: int = 2 * 60 * 60,
    ) -> None:
        self._codec = codec
        self._catalog = catalog
        self._slots = slots
        self._calendar = calendar
        self._store = store
        self._notifier = notifier
        self._idempotency = idempotency
        self._base_url = base_url.rstrip("/")
        self._idempotency_ttl = idempotency_ttl_seconds
        self._logger = logging.getLogger(__name__)

    # -- shared helpers -------------------------------------------------

    def session_type_for(self, session_type_id: str) -> SessionType:
        session_type = self._catalog.get_session_type(session_type_id)
        if session_type is None:
            raise BusinessRuleViolation("Session type not found", code="session_type_not_found")
        return session_type

    def respond(self, state: FlowState, transition: Transition, **changes: Any) -> FlowResponse:
        """Advance state, mint the next token and point the action at it."""
        next_state = state.advance(transition.next_step, **changes)
        token = self._codec.encode(next_state)
        action = transition.action
        if action.url is not None:
            action = NextAction(type=action.type, url=f"{self._base_url}{action.url}{token}")
        return FlowResponse(token=token, next_step=action)

    def _require_step(self, state: FlowState, *steps: FlowStep) -> None:
        if state.current_step not in steps:
            raise BusinessRuleViolation(
                f"This link is not valid for step {state.current_step.value}", code="step_mismatch"
            )

    async def _notify_user(self, user_id: str, text: str) -> None:
        try:
            await self._notifier.notify_user(user_id, text)
        except Exception as e:
            self._logger.warning("User notification failed", extra={"user_id": user_id, "error": str(e)})

    async def _notify_admin(self, text: str) -> None:
        try:
            await self._notifier.notify_admin(text)
        except Exception as e:
            self._logger.warning("Admin notification failed", extra={"error": str(e)})

    async def _run_once(
        self,
        scope: str,
        token: str,
        operation: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        """
        Execute operation at most once per token. A stored result is replayed
        verbatim; a failed attempt releases its claim so it can be retried.
        """
        key = token_key(scope, token)
        stored = await self._idempotency.get_result(key)
        if stored is not None:
            self._logger.info("Replaying stored result", extra={"step": scope})
            return stored
        if not await self._idempotency.claim(key, self._idempotency_ttl):
            stored = await self._idempotency.get_result(key)
            if stored is not None:
                return stored
            raise BusinessRuleViolation("This booking is already being processed", code="in_progress")
        try:
            result = await operation()
        except BaseException:
            await self._idempotency.release(key)
            raise
        await self._idempotency.save_result(key, result, self._idempotency_ttl)
        return result

    # -- primary booking --------------------------------------------------

    async def submit_primary_waiver(self, token: str, state: FlowState, data: dict[str, Any] | None) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_WAIVER)
        session_type = self.session_type_for(state.session_type_id)
        waiver = WaiverData.from_form(data)

        async def operation() -> dict[str, Any]:
            result = await self._commit_primary_booking(state, session_type, waiver)
            return result.to_dict()

        result = FinalizeResult.from_dict(await self._run_once("waiver", token, operation))
        return FlowResponse(token=result.token, next_step=result.next_step)

    async def finalize(self, token: str, state: FlowState) -> FinalizeResult:
        """Commit point for bookings without a waiver gate. Idempotent per token."""
        if state.flow_type is not FlowType.PRIMARY_BOOKING:
            raise BusinessRuleViolation("Only primary bookings can be finalized", code="step_mismatch")
        self._require_step(state, FlowStep.FINALIZE_BOOKING)
        session_type = self.session_type_for(state.session_type_id)

        async def operation() -> dict[str, Any]:
            result = await self._commit_primary_booking(state, session_type, None)
            return result.to_dict()

        return FinalizeResult.from_dict(await self._run_once("finalize", token, operation))

    async def _commit_primary_booking(
        self,
        state: FlowState,
        session_type: SessionType,
        waiver: WaiverData | None,
    ) -> FinalizeResult:
        start = parse_instant(state.appointment_datetime_iso)
        log_extra = {"user_id": state.user_id, "flow_type": state.flow_type.value, "step": state.current_step.value}
        end = start + timedelta(minutes=session_type.duration_minutes)
        # Loaded before any write; the event end depends on its buffer.
        rule = await self._slots.load_rule()

        # Only a verified hold of this exact slot is released; any other id is left alone.
        if state.placeholder_id:
            hold = await self._calendar.get_event(state.placeholder_id)
            if is_hold_for(hold, start, end):
                await self._calendar.delete_event(hold.id)
                self._logger.info("Placeholder released", extra={**log_extra, "event_id": hold.id})
            else:
                self._logger.warning(
                    "Ignoring unknown placeholder", extra={**log_extra, "event_id": state.placeholder_id}
                )

        if not await self._slots.check_slot(start, session_type.duration_minutes, rule=rule):
            self._logger.warning("Slot taken before booking", extra={**log_extra, "slot": start.isoformat()})
            return FinalizeResult(
                success=False,
                next_step=NextAction.error(SLOT_TAKEN_MESSAGE, code="slot_taken"),
                message=SLOT_TAKEN_MESSAGE,
            )

        session = await self._store.create_session(
            user_id=state.user_id,
            session_type_id=session_type.id,
            appointment_datetime=start,
            first_name=waiver.first_name if waiver else None,
            last_name=waiver.last_name if waiver else None,
            liability_form_data=waiver.liability_form_data if waiver else None,
        )
        self._logger.info("Session record created", extra={**log_extra, "session_id": session.id})

        needs_review = False
        try:
            await self._create_session_event(session, session_type, waiver, rule.buffer_minutes)
        except ConsistencyError as e:
            needs_review = True
            await self._flag_for_review(session, str(e))

        who = waiver.full_name if waiver else f"user {state.user_id}"
        await self._notify_user(
            state.user_id,
            f"Your {session_type.label} is booked for {start.isoformat()}.",
        )
        await self._notify_admin(
            f"New booking: {session_type.label} for {who} at {start.isoformat()} (session {session.id})."
        )

        transition = determine_next_step(state, session_type)
        changes: dict[str, Any] = {"session_id": session.id, "placeholder_id": None}
        if waiver:
            changes.update(first_name=waiver.first_name, last_name=waiver.last_name)
        response = self.respond(state, transition, **changes)
        return FinalizeResult(
            success=True,
            session_id=session.id,
            token=response.token,
            next_step=response.next_step,
            needs_manual_review=needs_review,
            message=MANUAL_REVIEW_MESSAGE if needs_review else None,
        )

    async def _create_session_event(
        self,
        session: Session,
        session_type: SessionType,
        waiver: WaiverData | None,
        buffer_minutes: int,
    ) -> str:
        """Create and link the calendar event. Once the record exists every failure is a ConsistencyError."""
        start = session.appointment_datetime
        end = start + timedelta(minutes=session_type.duration_minutes)
        if buffer_minutes == 0:
            # Free/busy merges touching events; keep back-to-back sessions apart.
            end -= timedelta(minutes=1)

        who = waiver.full_name if waiver else f"user {session.user_id}"
        try:
            event = await self._calendar.create_event(
                start=start,
                end=end,
                summary=f"{session_type.label} - {who}",
                description=f"Session type: {session_type.label}\nClient: {who}\nSession id: {session.id}",
            )
        except Exception as e:
            raise ConsistencyError(f"Calendar event creation failed: {e}", session_id=session.id) from e

        try:
            await self._store.update_session(session.id, calendar_event_id=event.id)
        except Exception as e:
            raise ConsistencyError(
                f"Calendar event {event.id} created but not linked: {e}", session_id=session.id
            ) from e
        self._logger.info("Calendar event created", extra={"session_id": session.id, "event_id": event.id})
        return event.id

    async def _flag_for_review(self, session: Session, reason: str) -> None:
        self._logger.error("Booking needs manual review", extra={"session_id": session.id, "error": reason})
        try:
            await self._store.update_session(session.id, status=SessionStatus.NEEDS_MANUAL_REVIEW)
        except Exception as e:
            self._logger.error("Could not flag session for review", extra={"session_id": session.id, "error": str(e)})
        await self._notify_admin(
            f"MANUAL REVIEW NEEDED: session {session.id} for user {session.user_id} at "
            f"{session.appointment_datetime.isoformat()} has no calendar event. {reason}"
        )

    async def create_invite(self, state: FlowState) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_FRIEND_INVITES)
        session_type = self.session_type_for(state.session_type_id)
        if not session_type.allows_group_invites or not state.session_id:
            raise BusinessRuleViolation("This session does not accept guests", code="invites_not_allowed")
        if await self._store.count_invites(state.session_id) >= max(session_type.max_group_size - 1, 0):
            raise BusinessRuleViolation("The group is already full", code="invite_limit")

        invite = await self._store.create_invite(state.session_id)
        self._logger.info("Invite created", extra={"session_id": state.session_id, "user_id": state.user_id})
        stay = Transition(state.current_step, NextAction(ActionType.REDIRECT, url=INVITE_FRIENDS_PATH))
        response = self.respond(state, stay)
        return FlowResponse(token=response.token, next_step=response.next_step, details={"invite_token": invite.invite_token})

    async def finish_invites(self, state: FlowState) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_FRIEND_INVITES)
        session_type = self.session_type_for(state.session_type_id)
        return self.respond(state, determine_next_step(state, session_type))

    # -- friend invite ------------------------------------------------------

    async def _usable_invite(self, state: FlowState, allowed: frozenset[InviteStatus] = PRE_WAIVER_STATUSES) -> SessionInvite:
        invite = await self._store.find_invite(state.invite_token) if state.invite_token else None
        if invite is None or invite.status not in allowed:
            self._logger.warning(
                "Invite rejected",
                extra={"user_id": state.user_id, "status": invite.status.value if invite else None},
            )
            raise BusinessRuleViolation("Invite invalid or already processed", code="invite_invalid")
        return invite

    async def accept_invite(self, state: FlowState) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_JOIN_DECISION)
        session_type = self.session_type_for(state.session_type_id)
        transition = determine_next_step(state, session_type)

        if transition.next_step is FlowStep.AWAITING_FRIEND_WAIVER:
            invite = await self._usable_invite(state)
            await self._store.update_invite(
                invite.invite_token, status=InviteStatus.ACCEPTED_BY_FRIEND, friend_user_id=state.user_id
            )
            return self.respond(state, transition)

        # Without a waiver, acceptance is the final step; a repeat must not count twice.
        invite = await self._usable_invite(
            state, allowed=frozenset({InviteStatus.PENDING, InviteStatus.VIEWED_BY_FRIEND})
        )
        return await self._confirm_friend(state, session_type, invite, None)

    async def submit_friend_waiver(self, state: FlowState, data: dict[str, Any] | None) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_FRIEND_WAIVER)
        invite = await self._usable_invite(state)
        waiver = WaiverData.from_form(data)
        session_type = self.session_type_for(state.session_type_id)
        return await self._confirm_friend(state, session_type, invite, waiver)

    async def _confirm_friend(
        self,
        state: FlowState,
        session_type: SessionType,
        invite: SessionInvite,
        waiver: WaiverData | None,
    ) -> FlowResponse:
        final_status = InviteStatus.WAIVER_COMPLETED_BY_FRIEND if waiver else InviteStatus.ACCEPTED_BY_FRIEND
        changes: dict[str, Any] = {"status": final_status, "friend_user_id": state.user_id}
        if waiver:
            changes.update(
                first_name=waiver.first_name,
                last_name=waiver.last_name,
                liability_form_data=waiver.liability_form_data,
            )
        await self._store.update_invite(invite.invite_token, **changes)
        self._logger.info(
            "Friend confirmed", extra={"user_id": state.user_id, "session_id": invite.parent_session_id}
        )

        friend_name = waiver.full_name if waiver else f"user {state.user_id}"
        parent = await self._store.get_session(invite.parent_session_id)
        if parent is not None and parent.calendar_event_id:
            await self._add_guest_to_event(parent, friend_name, final_status)

        await self._notify_user(state.user_id, f"You're in! See you at the {session_type.label}.")
        if parent is not None:
            await self._notify_user(parent.user_id, f"{friend_name} has joined your {session_type.label}.")
        await self._notify_admin(f"Guest {friend_name} joined session {invite.parent_session_id}.")

        transition = Transition(FlowStep.COMPLETED, NextAction(ActionType.COMPLETE))
        names = {"first_name": waiver.first_name, "last_name": waiver.last_name} if waiver else {}
        return self.respond(state, transition, **names)

    async def _add_guest_to_event(self, parent: Session, friend_name: str, final_status: InviteStatus) -> None:
        try:
            event = await self._calendar.get_event(parent.calendar_event_id)
            if event is None:
                self._logger.warning("Parent event missing", extra={"session_id": parent.id})
                return
            description = f"{event.description or ''}\nGuest: {friend_name}".lstrip("\n")
            summary = None
            # Only the first confirmed guest turns the session into a group.
            completed = await self._store.count_invites_by_status(parent.id, final_status)
            if completed == 1 and not event.summary.startswith(GROUP_TITLE_PREFIX):
                summary = f"{GROUP_TITLE_PREFIX}{event.summary}"
            await self._calendar.update_event(event.id, summary=summary, description=description)
        except ExternalServiceError as e:
            self._logger.error("Could not update parent event", extra={"session_id": parent.id, "error": str(e)})
            await self._notify_admin(f"Calendar event for session {parent.id} is missing guest {friend_name}.")

    async def decline_invite(self, state: FlowState) -> FlowResponse:
        self._require_step(state, FlowStep.AWAITING_JOIN_DECISION, FlowStep.AWAITING_FRIEND_WAIVER)
        if not state.invite_token:
            raise BusinessRuleViolation("Invite invalid or already processed", code="invite_invalid")
        try:
            invite = await self._store.update_invite(state.invite_token, status=InviteStatus.DECLINED)
        except NotFound as e:
            raise BusinessRuleViolation("Invite invalid or already processed", code="invite_invalid") from e
        self._logger.info("Invite declined", extra={"user_id": state.user_id, "session_id": invite.parent_session_id})

        parent = await self._store.get_session(invite.parent_session_id)
        if parent is not None:
            await self._notify_user(
                parent.user_id,
                "Your friend declined the invitation. Your own session is still confirmed.",
            )
        return self.respond(state, Transition(FlowStep.COMPLETED, NextAction(ActionType.COMPLETE)))
