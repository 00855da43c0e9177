"""Tests for the durable event store on an in-memory SQLite database."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import DataError, OperationalError

from analytics.schemas.events import AnalyticsEvent
from core.errors.exceptions import DuplicateEventError, DurableStoreError, SinkTimeoutError
from core.types import ErrorCategory

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_event(event_id="e1", event_type="PAGE_VIEW", user_id="u1", minutes=0, **fields):
    return AnalyticsEvent(
        eventId=event_id,
        eventType=event_type,
        userId=user_id,
        timestamp=BASE + timedelta(minutes=minutes),
        **fields,
    )


# =============================================================================
# Insert / exists / count
# =============================================================================


async def test_insert_and_exists(durable_store):
    row_id = await durable_store.insert(make_event(payload={"page": "/home"}))

    assert row_id >= 1
    assert await durable_store.exists("e1")
    assert not await durable_store.exists("e2")
    assert await durable_store.count() == 1


async def test_duplicate_event_id_rejected(durable_store):
    await durable_store.insert(make_event())

    with pytest.raises(DuplicateEventError) as exc_info:
        await durable_store.insert(make_event())

    assert exc_info.value.event_id == "e1"
    assert await durable_store.count() == 1


async def test_events_without_id_are_never_duplicates(durable_store):
    await durable_store.insert(make_event(event_id=None))
    await durable_store.insert(make_event(event_id=None))

    assert await durable_store.count() == 2


async def test_row_shape(durable_store):
    await durable_store.insert(
        make_event(payload={"amount": 5}, source="web", region="IN", sessionId="s1"),
        processed_at=BASE + timedelta(seconds=3),
    )

    page = await durable_store.find_by_user("u1")
    row = page.content[0]

    assert row["eventId"] == "e1"
    assert row["eventType"] == "PAGE_VIEW"
    assert row["sessionId"] == "s1"
    assert row["payload"] == {"amount": 5}
    assert row["source"] == "web"
    assert row["region"] == "IN"
    assert row["createdAt"] == "2024-01-01T12:00:00.000Z"
    assert row["processedAt"] == "2024-01-01T12:00:03.000Z"


async def test_null_payload_stored_as_null(durable_store):
    await durable_store.insert(make_event())

    row = (await durable_store.find_by_type("PAGE_VIEW")).content[0]

    assert row["payload"] is None


# =============================================================================
# Paged queries
# =============================================================================


async def test_find_by_type_newest_first_and_paged(durable_store):
    for i in range(5):
        await durable_store.insert(make_event(event_id=f"e{i}", minutes=i))
    await durable_store.insert(make_event(event_id="other", event_type="LOGIN"))

    first = await durable_store.find_by_type("PAGE_VIEW", page=0, size=2)
    last = await durable_store.find_by_type("PAGE_VIEW", page=2, size=2)

    assert [r["eventId"] for r in first.content] == ["e4", "e3"]
    assert first.total_elements == 5
    assert first.total_pages == 3
    assert [r["eventId"] for r in last.content] == ["e0"]


async def test_page_past_end_is_empty(durable_store):
    await durable_store.insert(make_event())

    page = await durable_store.find_by_type("PAGE_VIEW", page=3, size=20)

    assert page.content == []
    assert page.total_elements == 1


async def test_find_by_user(durable_store):
    await durable_store.insert(make_event(event_id="a", user_id="u1"))
    await durable_store.insert(make_event(event_id="b", user_id="u2"))

    page = await durable_store.find_by_user("u2")

    assert [r["eventId"] for r in page.content] == ["b"]


async def test_find_by_date_range_is_inclusive(durable_store):
    for i in range(4):
        await durable_store.insert(make_event(event_id=f"e{i}", minutes=i * 10))

    page = await durable_store.find_by_date_range(
        BASE + timedelta(minutes=10), BASE + timedelta(minutes=20)
    )

    assert sorted(r["eventId"] for r in page.content) == ["e1", "e2"]


async def test_invalid_paging(durable_store):
    with pytest.raises(ValueError):
        await durable_store.find_by_type("PAGE_VIEW", page=-1, size=20)
    with pytest.raises(ValueError):
        await durable_store.find_by_user("u1", page=0, size=0)


# =============================================================================
# Distributions
# =============================================================================


async def test_count_by_field(durable_store):
    await durable_store.insert(make_event(event_id="a", region="IN"))
    await durable_store.insert(make_event(event_id="b", region="IN"))
    await durable_store.insert(make_event(event_id="c", region="US"))
    await durable_store.insert(make_event(event_id="d"))

    assert await durable_store.count_by_field("region") == [("IN", 2), ("US", 1)]
    assert await durable_store.count_by_field("event_type") == [("PAGE_VIEW", 4)]


async def test_count_by_unknown_field(durable_store):
    with pytest.raises(ValueError):
        await durable_store.count_by_field("user_id")


# =============================================================================
# Failures
# =============================================================================


async def test_driver_errors_wrapped(durable_store):
    async def broken():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with pytest.raises(DurableStoreError) as exc_info:
        await durable_store._run("count", broken())

    assert isinstance(exc_info.value.cause, OperationalError)
    assert exc_info.value.category == ErrorCategory.TRANSIENT


async def test_data_errors_are_permanent(durable_store):
    async def bad_row():
        raise DataError("INSERT", {}, Exception("unsupported Unicode escape sequence"))

    with pytest.raises(DurableStoreError) as exc_info:
        await durable_store._run("insert", bad_row())

    assert exc_info.value.category == ErrorCategory.PERMANENT


async def test_other_constraint_violations_are_not_duplicates(durable_store):
    event = make_event().model_copy(update={"event_type": None})

    with pytest.raises(DurableStoreError) as exc_info:
        await durable_store.insert(event)

    assert not isinstance(exc_info.value, DuplicateEventError)
    assert exc_info.value.category == ErrorCategory.PERMANENT
    assert await durable_store.count() == 0


async def test_deadline_exceeded(durable_store):
    durable_store.timeout_seconds = 0.01

    async def slow_count():
        await asyncio.sleep(1)

    with pytest.raises(SinkTimeoutError):
        await durable_store._run("count", slow_count())


# =============================================================================
# Dead-letter table
# =============================================================================


async def test_dead_letter_save(dead_letter_store):
    row_id = await dead_letter_store.save('{"eventId": "e1"', "Malformed JSON", event_id=None)

    assert row_id >= 1
    assert await dead_letter_store.count() == 1


async def test_dead_letter_allows_nulls(dead_letter_store):
    await dead_letter_store.save(None, None)
    await dead_letter_store.save(None, None)

    assert await dead_letter_store.count() == 2
