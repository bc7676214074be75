from __future__ import annotations

from abc import ABC, abstractmethod

from slotflow.domain.entities.availability import AvailabilityRule


class RuleStorePort(ABC):
    @abstractmethod
    async def get_default_rule(self) -> AvailabilityRule:
        """Return the active availability rule. Raises NotFound if none is configured."""
        raise NotImplementedError
