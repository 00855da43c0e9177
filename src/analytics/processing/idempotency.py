"""
Two-tier duplicate detection.

The processed:<eventId> marker in the key-value store is the fast path. The
durable store's unique event_id is the authority and is consulted when the
marker is absent. Neither tier failing makes an event a duplicate: a durable
insert of a true duplicate is still rejected by the unique constraint.
"""

import logging

from analytics.processing.counters import EventCounters
from analytics.sinks.durable import DurableEventStore
from core.errors.exceptions import CircuitOpenError, SinkError
from core.resilience import CircuitBreaker

logger = logging.getLogger(__name__)


class IdempotencyGate:
    def __init__(
        self,
        counters: EventCounters,
        durable_store: DurableEventStore,
        durable_breaker: CircuitBreaker,
    ):
        self.counters = counters
        self.durable_store = durable_store
        self.durable_breaker = durable_breaker

    async def is_duplicate(self, event_id: str | None) -> bool:
        """True when the event was already processed.

        Events without an eventId are never duplicates.
        """
        if not event_id:
            return False

        try:
            if await self.counters.is_processed(event_id):
                return True
        except SinkError as e:
            logger.warning(
                "Idempotency marker lookup failed, checking durable store",
                extra={"event_id": event_id, "sink": "counters", "error_message": str(e)},
            )

        try:
            return await self.durable_breaker.call_async(
                lambda: self.durable_store.exists(event_id)
            )
        except CircuitOpenError:
            logger.debug(
                "Durable breaker open, treating event as new",
                extra={"event_id": event_id, "circuit_name": self.durable_breaker.name},
            )
            return False
        except SinkError as e:
            logger.warning(
                "Durable existence check failed, treating event as new",
                extra={"event_id": event_id, "sink": "durable", "error_message": str(e)},
            )
            return False


__all__ = ["IdempotencyGate"]
