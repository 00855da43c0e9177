"""
Real-time counters kept in the key-value store.

Key layout:
    count:event:TOTAL        all processed events (no expiry)
    count:event:<TYPE>       per event type, unknown types included (no expiry)
    count:region:<REGION>    per region, only when the event has one (no expiry)
    rate:<minuteBucket>      events processed in that wall-clock minute,
                             minuteBucket = now_ms // 60000 (10 minute expiry)
    processed:<eventId>      idempotency marker "1" (24 hour expiry)
"""

import logging
import time
from collections.abc import Callable

from analytics.schemas.events import AnalyticsEvent
from analytics.sinks.counters import CounterStore

logger = logging.getLogger(__name__)

TOTAL_KEY = "count:event:TOTAL"
MINUTE_MS = 60_000

# Windows exposed by the rate endpoint
RATE_WINDOWS = (1, 5, 15, 60)


def event_type_key(event_type: str) -> str:
    return f"count:event:{event_type}"


def region_key(region: str) -> str:
    return f"count:region:{region}"


def rate_key(bucket: int) -> str:
    return f"rate:{bucket}"


def processed_key(event_id: str) -> str:
    return f"processed:{event_id}"


def minute_bucket(now_ms: int) -> int:
    return now_ms // MINUTE_MS


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class EventCounters:
    """Counter maintenance and rolling-window reads over a CounterStore.

    Args:
        store: Key-value store adapter
        rate_bucket_ttl_seconds: Expiry of each rate:<bucket> key
        idempotency_ttl_seconds: Expiry of each processed:<eventId> marker
        now_ms: Clock returning epoch milliseconds (injectable for tests)
    """

    def __init__(
        self,
        store: CounterStore,
        rate_bucket_ttl_seconds: int = 600,
        idempotency_ttl_seconds: int = 86400,
        now_ms: Callable[[], int] = wall_clock_ms,
    ):
        self.store = store
        self.rate_bucket_ttl_seconds = rate_bucket_ttl_seconds
        self.idempotency_ttl_seconds = idempotency_ttl_seconds
        self.now_ms = now_ms

    async def record_event(self, event: AnalyticsEvent) -> None:
        """Increment totals, type, region and the current minute bucket.

        Not transactional: a failure part way leaves earlier increments applied.
        """
        await self.store.increment(TOTAL_KEY)
        await self.store.increment(event_type_key(event.event_type))
        if event.region:
            await self.store.increment(region_key(event.region))

        bucket_key = rate_key(minute_bucket(self.now_ms()))
        await self.store.increment(bucket_key)
        await self.store.expire(bucket_key, self.rate_bucket_ttl_seconds)

    async def mark_processed(self, event_id: str) -> None:
        await self.store.set(processed_key(event_id), "1", self.idempotency_ttl_seconds)

    async def is_processed(self, event_id: str) -> bool:
        return await self.store.has_key(processed_key(event_id))

    async def events_last_n_minutes(self, minutes: int) -> int:
        """Sum of rate buckets in [now_bucket - minutes, now_bucket].

        Expired or missing buckets count as zero.
        """
        if minutes < 0:
            raise ValueError(f"minutes must be >= 0, got {minutes}")
        now_bucket = minute_bucket(self.now_ms())
        keys = [rate_key(b) for b in range(now_bucket - minutes, now_bucket + 1)]
        values = await self.store.get_many(keys)
        return sum(v for v in values.values() if v is not None)

    async def rate_summary(self) -> dict[str, int]:
        return {
            f"last{n}Min": await self.events_last_n_minutes(n) for n in RATE_WINDOWS
        }


__all__ = [
    "EventCounters",
    "MINUTE_MS",
    "RATE_WINDOWS",
    "TOTAL_KEY",
    "event_type_key",
    "minute_bucket",
    "processed_key",
    "rate_key",
    "region_key",
    "wall_clock_ms",
]
