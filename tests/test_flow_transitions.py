"""
Tests for the booking flow transition table.
"""

from __future__ import annotations

import pytest

from slotflow.application.exceptions import InvalidFlowToken
from slotflow.application.use_cases.flow_transitions import TRANSITIONS, determine_next_step
from slotflow.domain.entities.flow import VALID_STEPS, ActionType, FlowState, FlowStep, FlowType
from slotflow.domain.entities.session_type import SessionType

PLAIN = SessionType(id="plain", label="Plain", duration_minutes=60)
WAIVER = SessionType(id="waiver", label="Waiver", duration_minutes=60, waiver_type="WAIVER")
GROUP = SessionType(
    id="group",
    label="Group",
    duration_minutes=90,
    waiver_type="WAIVER",
    allows_group_invites=True,
    max_group_size=3,
)
GROUP_NO_WAIVER = SessionType(id="open", label="Open", duration_minutes=60, allows_group_invites=True, max_group_size=3)


def state(flow_type: FlowType, step: FlowStep) -> FlowState:
    return FlowState(
        user_id="1",
        flow_type=flow_type,
        current_step=step,
        session_type_id="x",
        appointment_datetime_iso="2030-01-07T15:00:00+00:00",
    )


def test_every_valid_step_has_a_transition():
    expected = {(flow_type, step) for flow_type, steps in VALID_STEPS.items() for step in steps}

    assert set(TRANSITIONS) == expected


@pytest.mark.parametrize("session_type", [PLAIN, WAIVER, GROUP, GROUP_NO_WAIVER])
def test_transitions_stay_inside_their_flow_type(session_type):
    for (flow_type, step) in TRANSITIONS:
        transition = determine_next_step(state(flow_type, step), session_type)
        assert transition.next_step in VALID_STEPS[flow_type]


@pytest.mark.parametrize(
    "flow_type, step, session_type, next_step, action",
    [
        (FlowType.PRIMARY_BOOKING, FlowStep.INITIAL, WAIVER, FlowStep.AWAITING_WAIVER, ActionType.REDIRECT),
        (FlowType.PRIMARY_BOOKING, FlowStep.INITIAL, PLAIN, FlowStep.FINALIZE_BOOKING, ActionType.FINALIZE),
        (FlowType.PRIMARY_BOOKING, FlowStep.INITIAL, GROUP_NO_WAIVER, FlowStep.FINALIZE_BOOKING, ActionType.FINALIZE),
        (FlowType.PRIMARY_BOOKING, FlowStep.AWAITING_WAIVER, GROUP, FlowStep.AWAITING_FRIEND_INVITES, ActionType.REDIRECT),
        (FlowType.PRIMARY_BOOKING, FlowStep.AWAITING_WAIVER, WAIVER, FlowStep.COMPLETED, ActionType.COMPLETE),
        (FlowType.PRIMARY_BOOKING, FlowStep.FINALIZE_BOOKING, PLAIN, FlowStep.COMPLETED, ActionType.COMPLETE),
        (FlowType.PRIMARY_BOOKING, FlowStep.FINALIZE_BOOKING, GROUP_NO_WAIVER, FlowStep.AWAITING_FRIEND_INVITES, ActionType.REDIRECT),
        (FlowType.PRIMARY_BOOKING, FlowStep.AWAITING_FRIEND_INVITES, GROUP, FlowStep.COMPLETED, ActionType.COMPLETE),
        (FlowType.FRIEND_INVITE, FlowStep.AWAITING_JOIN_DECISION, GROUP, FlowStep.AWAITING_FRIEND_WAIVER, ActionType.REDIRECT),
        (FlowType.FRIEND_INVITE, FlowStep.AWAITING_JOIN_DECISION, GROUP_NO_WAIVER, FlowStep.COMPLETED, ActionType.COMPLETE),
        (FlowType.FRIEND_INVITE, FlowStep.AWAITING_FRIEND_WAIVER, GROUP, FlowStep.COMPLETED, ActionType.COMPLETE),
    ],
)
def test_transition_table(flow_type, step, session_type, next_step, action):
    transition = determine_next_step(state(flow_type, step), session_type)

    assert transition.next_step is next_step
    assert transition.action.type is action


def test_waiver_redirect_names_the_form():
    transition = determine_next_step(state(FlowType.PRIMARY_BOOKING, FlowStep.INITIAL), WAIVER)

    assert transition.action.url == "/form-handler.html?formType=WAIVER&flowToken="


def test_unreachable_pair_is_rejected():
    with pytest.raises(InvalidFlowToken):
        determine_next_step(state(FlowType.FRIEND_INVITE, FlowStep.INITIAL), PLAIN)
