"""Paged event queries, distributions and searches for the read API."""

from datetime import datetime
from typing import Any

from analytics.schemas.paging import Page
from analytics.sinks.durable import DurableEventStore
from analytics.sinks.search import SearchIndex

# Distribution endpoint name -> (durable column, response key)
DISTRIBUTIONS = {
    "event-types": ("event_type", "eventType"),
    "regions": ("region", "region"),
    "sources": ("source", "source"),
}


class EventQueries:
    def __init__(self, durable_store: DurableEventStore, search_index: SearchIndex):
        self.durable_store = durable_store
        self.search_index = search_index

    async def by_type(self, event_type: str, page: int, size: int) -> Page:
        return await self.durable_store.find_by_type(event_type, page, size)

    async def by_user(self, user_id: str, page: int, size: int) -> Page:
        return await self.durable_store.find_by_user(user_id, page, size)

    async def by_date_range(
        self, start: datetime, end: datetime, page: int, size: int
    ) -> Page:
        if start > end:
            raise ValueError("'from' must not be after 'to'")
        return await self.durable_store.find_by_date_range(start, end, page, size)

    async def distribution(self, name: str) -> list[dict[str, Any]]:
        """[{<field>: value, "count": n}], largest count first."""
        column, key = DISTRIBUTIONS[name]
        rows = await self.durable_store.count_by_field(column)
        return [{key: value, "count": count} for value, count in rows]

    async def search(self, field: str, value: str, page: int, size: int) -> Page:
        return await self.search_index.search_by_field(field, value, page, size)


__all__ = ["DISTRIBUTIONS", "EventQueries"]
