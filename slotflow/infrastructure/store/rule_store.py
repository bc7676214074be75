from __future__ import annotations

import json
import logging
from pathlib import Path

from slotflow.application.exceptions import ConfigurationError, NotFound
from slotflow.application.ports.rule_store import RuleStorePort
from slotflow.domain.entities.availability import AvailabilityRule


class JsonRuleStore(RuleStorePort):
    """Reads the practitioner's availability rule from a JSON file on every call."""

    def __init__(self, path: str = "./data/availability_rule.json") -> None:
        self._path = Path(path)
        self._logger = logging.getLogger(__name__)

    async def get_default_rule(self) -> AvailabilityRule:
        if not self._path.exists():
            raise NotFound(f"Availability rule file {self._path} does not exist")
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            self._logger.error("Unreadable availability rule", extra={"error": str(e)})
            raise ConfigurationError(f"Unreadable availability rule: {e}") from e
        try:
            return AvailabilityRule.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed availability rule: {e}") from e


class StaticRuleStore(RuleStorePort):
    def __init__(self, rule: AvailabilityRule | None) -> None:
        self.rule = rule

    async def get_default_rule(self) -> AvailabilityRule:
        if self.rule is None:
            raise NotFound("No availability rule configured")
        return self.rule
