"""Tests for sink and breaker construction."""

from unittest.mock import AsyncMock

from analytics.sinks.counters import CounterStore
from analytics.sinks.durable import DeadLetterStore, DurableEventStore
from analytics.sinks.factory import Sinks, build_breaker, build_sinks
from analytics.sinks.search import SearchIndex
from config.config import config_from_dict
from core.resilience import get_circuit_breaker


def test_build_sinks_shares_engine():
    config = config_from_dict(
        {
            "postgres": {"dsn": "sqlite+aiosqlite://"},
            "processing": {"sink_timeout_seconds": 2.0},
        }
    )

    sinks = build_sinks(config)

    assert isinstance(sinks.durable, DurableEventStore)
    assert isinstance(sinks.dead_letter, DeadLetterStore)
    assert isinstance(sinks.search, SearchIndex)
    assert isinstance(sinks.counters, CounterStore)
    assert sinks.dead_letter.engine is sinks.durable.engine
    assert sinks.durable.timeout_seconds == 2.0
    assert sinks.search.timeout_seconds == 2.0
    assert sinks.search.index == "analytics-events"


def test_build_breaker_uses_config_and_registry():
    config = config_from_dict({"circuit_breakers": {"search": {"failure_threshold": 2}}})

    breaker = build_breaker(config, "search")

    assert breaker.config.failure_threshold == 2
    assert breaker.config.timeout_seconds == 60.0
    assert get_circuit_breaker("search") is breaker


async def test_close_continues_after_failure():
    search, counters, durable = AsyncMock(), AsyncMock(), AsyncMock()
    search.close.side_effect = RuntimeError("already closed")
    sinks = Sinks(durable=durable, dead_letter=AsyncMock(), search=search, counters=counters)

    await sinks.close()

    counters.close.assert_awaited_once()
    durable.close.assert_awaited_once()
