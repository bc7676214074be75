from functools import lru_cache
import logging
from datetime import timedelta

from slotflow.core.config import settings
from slotflow.application.ports.booking_store import BookingStorePort
from slotflow.application.ports.idempotency_store import IdempotencyStorePort
from slotflow.application.ports.notifier import NotifierPort
from slotflow.application.ports.rule_store import RuleStorePort
from slotflow.application.ports.session_types import SessionTypeCatalogPort
from slotflow.application.use_cases.availability import AvailabilityEngine
from slotflow.application.use_cases.booking_flow import BookingFlowManager
from slotflow.application.use_cases.busy_intervals import BusyIntervalAggregator
from slotflow.application.use_cases.flow_steps import FlowStepHandlers
from slotflow.application.use_cases.flow_token import FlowTokenCodec
from slotflow.application.use_cases.placeholders import PlaceholderService
from slotflow.application.use_cases.slot_listing import SlotListingService
from slotflow.infrastructure.calendar.google_calendar import GoogleCalendar
from slotflow.infrastructure.calendar.mock_calendar import MockCalendar
from slotflow.infrastructure.notify.log_notifier import LogNotifier
from slotflow.infrastructure.notify.telegram_notifier import TelegramNotifier
from slotflow.infrastructure.store.json_store import JsonBookingStore
from slotflow.infrastructure.store.memory_store import MemoryBookingStore, MemoryIdempotencyStore
from slotflow.infrastructure.store.redis_store import RedisIdempotencyStore
from slotflow.infrastructure.store.rule_store import JsonRuleStore
from slotflow.infrastructure.store.session_type_store import SessionTypeCatalogStore
from slotflow.infrastructure.tokens.jwt_signer import JwtTokenSigner

logger = logging.getLogger(__name__)


def _use_mock_calendar() -> bool:
    return not settings.GOOGLE_CALENDAR_ACCESS_TOKEN or settings.is_dev


def _session_calendar_id() -> str | None:
    if _use_mock_calendar():
        return settings.SESSION_CALENDAR_ID or "sessions"
    return settings.SESSION_CALENDAR_ID


@lru_cache
def get_calendar() -> MockCalendar | GoogleCalendar:
    if _use_mock_calendar():
        logger.info("Using MockCalendar", extra={"calendar_id": _session_calendar_id()})
        return MockCalendar(session_calendar_id=_session_calendar_id())
    return GoogleCalendar()


@lru_cache
def get_rule_store() -> RuleStorePort:
    return JsonRuleStore(settings.AVAILABILITY_RULE_PATH)


@lru_cache
def get_session_type_catalog() -> SessionTypeCatalogPort:
    return SessionTypeCatalogStore.from_json(settings.SESSION_TYPES_PATH)


@lru_cache
def get_booking_store() -> BookingStorePort:
    if settings.BOOKING_STORE == "memory":
        if not settings.is_dev:
            raise ValueError("BOOKING_STORE=memory is only allowed in dev/local; bookings must survive restarts.")
        logger.info("Using in-process booking store (ENV=dev/local)")
        return MemoryBookingStore()
    if settings.BOOKING_STORE != "json":
        raise ValueError(f"Unknown BOOKING_STORE: {settings.BOOKING_STORE!r}")
    return JsonBookingStore(settings.DATA_DIR)


@lru_cache
def get_idempotency_store() -> IdempotencyStorePort:
    if settings.REDIS_URL:
        return RedisIdempotencyStore.from_url(settings.REDIS_URL)
    if not settings.is_dev:
        raise ValueError("REDIS_URL is required outside dev/local so finalize stays idempotent across workers.")
    logger.info("Using in-process idempotency store (ENV=dev/local)")
    return MemoryIdempotencyStore()


@lru_cache
def get_notifier() -> NotifierPort:
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.info("Using LogNotifier (TELEGRAM_BOT_TOKEN missing)")
        return LogNotifier()
    return TelegramNotifier(
        bot_token=settings.TELEGRAM_BOT_TOKEN,
        admin_chat_ids=settings.ADMIN_CHAT_IDS,
        base_url=settings.TELEGRAM_API_BASE_URL,
    )


@lru_cache
def get_token_codec() -> FlowTokenCodec:
    signer = JwtTokenSigner(settings.FLOW_TOKEN_SECRET)
    return FlowTokenCodec(signer, ttl=timedelta(minutes=settings.FLOW_TOKEN_TTL_MINUTES))


def get_slot_listing_service() -> SlotListingService:
    session_calendar_id = _session_calendar_id()
    aggregator = BusyIntervalAggregator(
        busy_query=get_calendar(),
        session_calendar_id=session_calendar_id,
        personal_calendar_id=settings.PERSONAL_CALENDAR_ID,
    )
    return SlotListingService(
        rule_store=get_rule_store(),
        aggregator=aggregator,
        engine=AvailabilityEngine(primary_calendar_id=session_calendar_id),
    )


def get_placeholder_service() -> PlaceholderService:
    return PlaceholderService(
        catalog=get_session_type_catalog(),
        slots=get_slot_listing_service(),
        calendar=get_calendar(),
        ttl_minutes=settings.PLACEHOLDER_TTL_MINUTES,
    )


def get_booking_flow_manager() -> BookingFlowManager:
    handlers = FlowStepHandlers(
        codec=get_token_codec(),
        catalog=get_session_type_catalog(),
        slots=get_slot_listing_service(),
        calendar=get_calendar(),
        store=get_booking_store(),
        notifier=get_notifier(),
        idempotency=get_idempotency_store(),
        base_url=settings.WEBAPP_BASE_URL,
        idempotency_ttl_seconds=settings.FLOW_TOKEN_TTL_MINUTES * 60,
    )
    return BookingFlowManager(codec=get_token_codec(), handlers=handlers, store=get_booking_store())
