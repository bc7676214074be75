from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from slotflow.application.exceptions import ConfigurationError, ExternalServiceError, NotFound
from slotflow.application.ports.rule_store import RuleStorePort
from slotflow.application.use_cases.availability import AvailabilityEngine
from slotflow.application.use_cases.busy_intervals import BusyIntervalAggregator, local_day_bounds
from slotflow.domain.entities.availability import AvailabilityRule, SlotRequest


class SlotListingService:
    def __init__(
        self,
        rule_store: RuleStorePort,
        aggregator: BusyIntervalAggregator,
        engine: AvailabilityEngine,
    ) -> None:
        self._rule_store = rule_store
        self._aggregator = aggregator
        self._engine = engine
        self._logger = logging.getLogger(__name__)

    async def load_rule(self) -> AvailabilityRule:
        try:
            return await self._rule_store.get_default_rule()
        except NotFound as e:
            raise ConfigurationError(f"No availability rule: {e}") from e

    async def list_slots(self, request: SlotRequest) -> list[datetime]:
        """
        List bookable start instants for the request. Always returns a list;
        configuration and calendar failures are logged and yield no slots.
        """
        try:
            rule = await self.load_rule()
            time_min, _ = local_day_bounds(request.start_date, rule.tz)
            _, time_max = local_day_bounds(request.end_date, rule.tz)
            busy = await self._aggregator.fetch_busy(time_min, time_max)
        except ConfigurationError as e:
            self._logger.error("Slot listing misconfigured", extra={"error": str(e)})
            return []
        except ExternalServiceError as e:
            self._logger.error("Cannot determine availability", extra={"error": str(e)})
            return []
        return self._engine.find_slots(request, rule, busy)

    async def check_slot(
        self,
        start: datetime,
        duration_minutes: int,
        rule: AvailabilityRule | None = None,
    ) -> bool:
        """
        Re-check one slot right before booking it.

        Unlike list_slots this raises: ConfigurationError for a missing rule or
        calendar id, ExternalServiceError when busy data cannot be fetched.
        Neither is ever reported as a taken or free slot.
        """
        if rule is None:
            rule = await self.load_rule()
        start = start.astimezone(timezone.utc)
        end = start + timedelta(minutes=duration_minutes)
        pad = timedelta(minutes=rule.buffer_minutes)
        day_start, day_end = local_day_bounds(start.astimezone(rule.tz).date(), rule.tz)
        busy = await self._aggregator.fetch_busy(min(day_start, start - pad), max(day_end, end + pad))
        return self._engine.is_slot_available(start, duration_minutes, rule, busy)
