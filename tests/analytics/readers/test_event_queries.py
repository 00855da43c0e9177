"""Tests for the read-side event queries."""

from datetime import UTC, datetime, timedelta

import pytest

from analytics.readers.events import EventQueries
from analytics.schemas.events import AnalyticsEvent

T0 = datetime(2024, 1, 2, 12, 0, tzinfo=UTC)


@pytest.fixture
def queries(durable_store, search_index):
    return EventQueries(durable_store, search_index)


@pytest.fixture
async def stored(durable_store, search_index):
    events = [
        AnalyticsEvent(eventId="e1", eventType="PAGE_VIEW", userId="u1", region="US", source="web", timestamp=T0),
        AnalyticsEvent(
            eventId="e2", eventType="PURCHASE", userId="u1", region="IN", source="web",
            timestamp=T0 + timedelta(minutes=1),
        ),
        AnalyticsEvent(
            eventId="e3", eventType="PAGE_VIEW", userId="u2", region="US", source="mobile-ios",
            timestamp=T0 + timedelta(minutes=2),
        ),
    ]
    for event in events:
        await durable_store.insert(event)
        await search_index.upsert(event.to_search_document())
    return events


async def test_by_type(queries, stored):
    page = await queries.by_type("PAGE_VIEW", 0, 20)

    assert page.total_elements == 2
    # Newest first
    assert [e["eventId"] for e in page.content] == ["e3", "e1"]


async def test_by_user_paged(queries, stored):
    page = await queries.by_user("u1", 1, 1)

    assert page.total_elements == 2
    assert page.total_pages == 2
    assert [e["eventId"] for e in page.content] == ["e1"]


async def test_by_date_range_inclusive(queries, stored):
    page = await queries.by_date_range(T0, T0 + timedelta(minutes=1), 0, 20)

    assert sorted(e["eventId"] for e in page.content) == ["e1", "e2"]


async def test_by_date_range_rejects_inverted_range(queries):
    with pytest.raises(ValueError, match="'from' must not be after 'to'"):
        await queries.by_date_range(T0, T0 - timedelta(seconds=1), 0, 20)


async def test_distributions(queries, stored):
    assert await queries.distribution("event-types") == [
        {"eventType": "PAGE_VIEW", "count": 2},
        {"eventType": "PURCHASE", "count": 1},
    ]
    assert await queries.distribution("regions") == [
        {"region": "US", "count": 2},
        {"region": "IN", "count": 1},
    ]
    assert await queries.distribution("sources") == [
        {"source": "web", "count": 2},
        {"source": "mobile-ios", "count": 1},
    ]


async def test_unknown_distribution(queries):
    with pytest.raises(KeyError):
        await queries.distribution("colours")


async def test_search(queries, stored):
    page = await queries.search("userId", "u1", 0, 20)

    assert page.total_elements == 2
    assert {d["eventId"] for d in page.content} == {"e1", "e2"}
