"""
Key-value counter store (Redis via redis.asyncio).

Holds the aggregate counters, the per-minute rate buckets and the
processed-event markers. All mutations are single atomic Redis commands;
there is no cross-key transaction.
"""

import logging
from collections.abc import Iterable

import redis.asyncio as redis
from redis.exceptions import RedisError

from analytics.sinks.deadline import call_with_deadline
from config.config import RedisSettings
from core.errors.exceptions import CounterStoreError

logger = logging.getLogger(__name__)

SINK_NAME = "counters"


class CounterStore:
    """Thin async wrapper over a Redis client with per-call deadlines.

    Redis errors surface as CounterStoreError and deadline expiry as
    SinkTimeoutError; both are transient.
    """

    def __init__(self, client: redis.Redis, timeout_seconds: float | None = 5.0):
        self.client = client
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls, settings: RedisSettings, timeout_seconds: float | None = 5.0
    ) -> "CounterStore":
        client = redis.from_url(
            settings.url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.socket_timeout_seconds,
            socket_connect_timeout=settings.socket_connect_timeout_seconds,
        )
        return cls(client, timeout_seconds)

    async def _run(self, operation: str, coro):
        try:
            return await call_with_deadline(coro, SINK_NAME, operation, self.timeout_seconds)
        except (RedisError, OSError) as e:
            raise CounterStoreError(
                f"Counter store {operation} failed: {e}",
                cause=e,
                context={"operation": operation},
            ) from e

    async def increment(self, key: str) -> int:
        return int(await self._run("increment", self.client.incr(key)))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._run("expire", self.client.expire(key, ttl_seconds)))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._run("set", self.client.set(key, value, ex=ttl_seconds))

    async def has_key(self, key: str) -> bool:
        return int(await self._run("has_key", self.client.exists(key))) > 0

    async def get_int(self, key: str) -> int | None:
        """Integer value of key, or None when absent."""
        value = await self._run("get", self.client.get(key))
        return int(value) if value is not None else None

    async def get_many(self, keys: Iterable[str]) -> dict[str, int | None]:
        keys = list(keys)
        if not keys:
            return {}
        values = await self._run("get_many", self.client.mget(keys))
        return {
            key: int(value) if value is not None else None
            for key, value in zip(keys, values)
        }

    async def ping(self) -> bool:
        return bool(await self._run("ping", self.client.ping()))

    async def close(self) -> None:
        await self.client.aclose()


__all__ = ["CounterStore"]
