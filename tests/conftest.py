from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timezone

import pytest

from slotflow.application.use_cases.availability import AvailabilityEngine
from slotflow.application.use_cases.booking_flow import BookingFlowManager
from slotflow.application.use_cases.busy_intervals import BusyIntervalAggregator
from slotflow.application.use_cases.flow_steps import FlowStepHandlers
from slotflow.application.use_cases.flow_token import FlowTokenCodec
from slotflow.application.use_cases.placeholders import PlaceholderService
from slotflow.application.use_cases.slot_listing import SlotListingService
from slotflow.domain.entities.availability import WEEKDAY_CODES, AvailabilityRule, TimeBlock
from slotflow.domain.entities.session_type import SessionType
from slotflow.infrastructure.calendar.mock_calendar import MockCalendar
from slotflow.infrastructure.notify.log_notifier import LogNotifier
from slotflow.infrastructure.store.memory_store import MemoryBookingStore, MemoryIdempotencyStore
from slotflow.infrastructure.store.rule_store import StaticRuleStore
from slotflow.infrastructure.store.session_type_store import SessionTypeCatalogStore
from slotflow.infrastructure.tokens.jwt_signer import JwtTokenSigner

NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)
SLOT = "2030-01-07T15:00:00Z"

SESSION_TYPES = {
    "individual": SessionType(id="individual", label="Individual Session", duration_minutes=60),
    "individual_waiver": SessionType(
        id="individual_waiver", label="Individual Session", duration_minutes=60, waiver_type="WAIVER"
    ),
    "group": SessionType(
        id="group",
        label="Group Session",
        duration_minutes=90,
        waiver_type="WAIVER",
        allows_group_invites=True,
        max_group_size=3,
    ),
    "open": SessionType(
        id="open", label="Open Session", duration_minutes=60, allows_group_invites=True, max_group_size=2
    ),
    "retired": SessionType(id="retired", label="Retired", duration_minutes=60, active=False),
}


def business_hours_rule(buffer_minutes: int = 30) -> AvailabilityRule:
    return AvailabilityRule(
        weekly_availability={code: (TimeBlock(time(9), time(17)),) for code in WEEKDAY_CODES},
        timezone="UTC",
        buffer_minutes=buffer_minutes,
    )


@dataclass
class BookingWorld:
    calendar: MockCalendar
    store: MemoryBookingStore
    notifier: LogNotifier
    idempotency: MemoryIdempotencyStore
    rules: StaticRuleStore
    codec: FlowTokenCodec
    slots: SlotListingService
    placeholders: PlaceholderService
    manager: BookingFlowManager

    def admin_messages(self) -> list[str]:
        return [text for who, text in self.notifier.sent if who == "admin"]


def build_world(buffer_minutes: int = 30) -> BookingWorld:
    calendar = MockCalendar(session_calendar_id="sessions")
    store = MemoryBookingStore()
    notifier = LogNotifier()
    idempotency = MemoryIdempotencyStore()
    rules = StaticRuleStore(business_hours_rule(buffer_minutes))
    catalog = SessionTypeCatalogStore(SESSION_TYPES)
    codec = FlowTokenCodec(JwtTokenSigner("test-secret"))
    slots = SlotListingService(
        rule_store=rules,
        aggregator=BusyIntervalAggregator(calendar, "sessions", "personal"),
        engine=AvailabilityEngine("sessions", clock=lambda: NOW),
    )
    handlers = FlowStepHandlers(
        codec=codec,
        catalog=catalog,
        slots=slots,
        calendar=calendar,
        store=store,
        notifier=notifier,
        idempotency=idempotency,
    )
    return BookingWorld(
        calendar=calendar,
        store=store,
        notifier=notifier,
        idempotency=idempotency,
        rules=rules,
        codec=codec,
        slots=slots,
        placeholders=PlaceholderService(catalog, slots, calendar),
        manager=BookingFlowManager(codec=codec, handlers=handlers, store=store),
    )


@pytest.fixture
def world() -> BookingWorld:
    return build_world()
