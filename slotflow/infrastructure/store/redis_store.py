from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from slotflow.application.exceptions import ExternalServiceError
from slotflow.application.ports.idempotency_store import IdempotencyStorePort

PENDING = "__pending__"

# Delete the key only while it still holds the pending marker.
_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisIdempotencyStore(IdempotencyStorePort):
    def __init__(self, client: redis.Redis, prefix: str = "slotflow:idempotency:") -> None:
        self._client = client
        self._prefix = prefix
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def from_url(url: str) -> "RedisIdempotencyStore":
        return RedisIdempotencyStore(redis.from_url(url, decode_responses=True))

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def claim(self, key: str, ttl_seconds: int) -> bool:
        try:
            claimed = await self._client.set(self._key(key), PENDING, nx=True, ex=ttl_seconds)
        except RedisError as e:
            self._logger.error("Idempotency claim failed", extra={"error": str(e)})
            raise ExternalServiceError(f"Idempotency store unavailable: {e}") from e
        return bool(claimed)

    async def get_result(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as e:
            self._logger.error("Idempotency lookup failed", extra={"error": str(e)})
            raise ExternalServiceError(f"Idempotency store unavailable: {e}") from e
        if raw is None or raw == PENDING:
            return None
        return json.loads(raw)

    async def save_result(self, key: str, result: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._client.set(self._key(key), json.dumps(result), ex=ttl_seconds)
        except RedisError as e:
            self._logger.error("Idempotency save failed", extra={"error": str(e)})
            raise ExternalServiceError(f"Idempotency store unavailable: {e}") from e

    async def release(self, key: str) -> None:
        try:
            await self._client.eval(_RELEASE_SCRIPT, 1, self._key(key), PENDING)
        except RedisError as e:
            # The claim expires on its own; log and let the original error surface.
            self._logger.warning("Idempotency release failed", extra={"error": str(e)})
