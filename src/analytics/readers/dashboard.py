"""Dashboard summary and rate reads, served from the counter store."""

import logging
from typing import Any

from analytics.processing.counters import TOTAL_KEY, EventCounters, event_type_key, region_key
from analytics.schemas.events import format_timestamp, utc_now
from analytics.sinks.durable import DurableEventStore

logger = logging.getLogger(__name__)

DASHBOARD_EVENT_TYPES = (
    "PAGE_VIEW",
    "PURCHASE",
    "LOGIN",
    "LOGOUT",
    "ADD_TO_CART",
    "SEARCH",
    "ERROR",
    "CLICK",
)

DASHBOARD_REGIONS = ("IN", "US", "EU", "APAC")


class DashboardReader:
    """Assembles the dashboard from point reads on the counter keys.

    Types and regions come from fixed lists; keys that do not exist are left
    out of the maps rather than reported as zero. The total falls back to a
    durable row count when its counter is missing (cold or flushed store).
    """

    def __init__(self, counters: EventCounters, durable_store: DurableEventStore):
        self.counters = counters
        self.durable_store = durable_store

    async def summary(self) -> dict[str, Any]:
        store = self.counters.store

        total = await store.get_int(TOTAL_KEY)
        if total is None:
            logger.info("Total counter missing, falling back to durable count")
            total = await self.durable_store.count()

        by_type = await store.get_many(event_type_key(t) for t in DASHBOARD_EVENT_TYPES)
        by_region = await store.get_many(region_key(r) for r in DASHBOARD_REGIONS)

        return {
            "totalEvents": total,
            "byEventType": {
                t: by_type[event_type_key(t)]
                for t in DASHBOARD_EVENT_TYPES
                if by_type.get(event_type_key(t)) is not None
            },
            "byRegion": {
                r: by_region[region_key(r)]
                for r in DASHBOARD_REGIONS
                if by_region.get(region_key(r)) is not None
            },
            "eventsLast5Min": await self.counters.events_last_n_minutes(5),
            "timestamp": format_timestamp(utc_now()),
        }

    async def rate(self) -> dict[str, int]:
        return await self.counters.rate_summary()


__all__ = ["DASHBOARD_EVENT_TYPES", "DASHBOARD_REGIONS", "DashboardReader"]
