from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from slotflow.application.exceptions import InvalidFlowToken
from slotflow.domain.entities.flow import ActionType, FlowState, FlowStep, FlowType, NextAction
from slotflow.domain.entities.session_type import SessionType

INVITE_FRIENDS_PATH = "/invite-friends.html?flowToken="
JOIN_SESSION_PATH = "/join-session.html?flowToken="

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    next_step: FlowStep
    action: NextAction


def waiver_form_path(session_type: SessionType) -> str:
    return f"/form-handler.html?formType={session_type.waiver_type}&flowToken="


def _complete(_: SessionType) -> Transition:
    return Transition(FlowStep.COMPLETED, NextAction(ActionType.COMPLETE))


def _primary_start(session_type: SessionType) -> Transition:
    if session_type.requires_waiver:
        return Transition(
            FlowStep.AWAITING_WAIVER,
            NextAction(ActionType.REDIRECT, url=waiver_form_path(session_type)),
        )
    return Transition(FlowStep.FINALIZE_BOOKING, NextAction(ActionType.FINALIZE))


def _primary_committed(session_type: SessionType) -> Transition:
    # The booking exists once the waiver is in or finalize ran.
    if session_type.allows_group_invites:
        return Transition(
            FlowStep.AWAITING_FRIEND_INVITES,
            NextAction(ActionType.REDIRECT, url=INVITE_FRIENDS_PATH),
        )
    return _complete(session_type)


def _friend_accepted(session_type: SessionType) -> Transition:
    if session_type.requires_waiver:
        return Transition(
            FlowStep.AWAITING_FRIEND_WAIVER,
            NextAction(ActionType.REDIRECT, url=waiver_form_path(session_type)),
        )
    return _complete(session_type)


# Keyed by the step the flow is leaving. Every step in VALID_STEPS has an entry.
TRANSITIONS: dict[tuple[FlowType, FlowStep], Callable[[SessionType], Transition]] = {
    (FlowType.PRIMARY_BOOKING, FlowStep.INITIAL): _primary_start,
    (FlowType.PRIMARY_BOOKING, FlowStep.AWAITING_WAIVER): _primary_committed,
    (FlowType.PRIMARY_BOOKING, FlowStep.FINALIZE_BOOKING): _primary_committed,
    (FlowType.PRIMARY_BOOKING, FlowStep.AWAITING_FRIEND_INVITES): _complete,
    (FlowType.PRIMARY_BOOKING, FlowStep.COMPLETED): _complete,
    (FlowType.FRIEND_INVITE, FlowStep.AWAITING_JOIN_DECISION): _friend_accepted,
    (FlowType.FRIEND_INVITE, FlowStep.AWAITING_FRIEND_WAIVER): _complete,
    (FlowType.FRIEND_INVITE, FlowStep.COMPLETED): _complete,
}


def determine_next_step(state: FlowState, session_type: SessionType) -> Transition:
    """Pure transition lookup; performs no I/O."""
    try:
        rule = TRANSITIONS[(state.flow_type, state.current_step)]
    except KeyError:
        raise InvalidFlowToken(
            f"No transition from {state.current_step.value} in a {state.flow_type.value} flow"
        ) from None
    transition = rule(session_type)
    logger.debug(
        "Next step determined",
        extra={"flow_type": state.flow_type.value, "step": transition.next_step.value},
    )
    return transition
