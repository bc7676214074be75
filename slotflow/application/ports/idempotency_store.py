from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class IdempotencyStorePort(ABC):
    """Keyed record of completed one-shot operations, shared by every process."""

    @abstractmethod
    async def claim(self, key: str, ttl_seconds: int) -> bool:
        """
        Atomically reserve key. Returns False if another caller holds it
        or a result is already stored.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_result(self, key: str) -> dict[str, Any] | None:
        """Return the stored result, or None if missing or still pending."""
        raise NotImplementedError

    @abstractmethod
    async def save_result(self, key: str, result: dict[str, Any], ttl_seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def release(self, key: str) -> None:
        """Drop a pending claim so the operation can be retried."""
        raise NotImplementedError
