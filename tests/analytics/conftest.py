"""
Shared fixtures for analytics tests.

The durable store runs on an in-memory SQLite database (aiosqlite); the
counter store and search index are in-memory fakes with the same async
surface as the real adapters.
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from analytics.processing.counters import MINUTE_MS, EventCounters
from analytics.processing.dead_letter import DeadLetterQuarantine
from analytics.processing.idempotency import IdempotencyGate
from analytics.processing.processor import EventProcessor
from analytics.schemas.paging import Page, validate_paging
from analytics.sinks.durable import DeadLetterStore, DurableEventStore
from core.errors.exceptions import CounterStoreError, SearchIndexError
from core.resilience import CircuitBreaker, CircuitBreakerConfig

# Start of an arbitrary wall-clock minute
START_MS = 28_000_000 * MINUTE_MS


class FakeClock:
    """Epoch-milliseconds clock advanced by hand."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance_minutes(self, minutes: float) -> None:
        self.now_ms += int(minutes * MINUTE_MS)


class FakeCounterStore:
    """In-memory CounterStore with expiry driven by FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.values: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise CounterStoreError("counter store unavailable")

    def _purge(self, key: str) -> None:
        expires_at = self.expiry.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self.values.pop(key, None)
            self.expiry.pop(key, None)

    async def increment(self, key: str) -> int:
        self._check()
        self._purge(key)
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._check()
        self._purge(key)
        if key not in self.values:
            return False
        self.expiry[key] = self.clock() + ttl_seconds * 1000
        return True

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._check()
        self.values[key] = value
        if ttl_seconds:
            self.expiry[key] = self.clock() + ttl_seconds * 1000
        else:
            self.expiry.pop(key, None)

    async def has_key(self, key: str) -> bool:
        self._check()
        self._purge(key)
        return key in self.values

    async def get_int(self, key: str) -> int | None:
        self._check()
        self._purge(key)
        value = self.values.get(key)
        return int(value) if value is not None else None

    async def get_many(self, keys) -> dict[str, int | None]:
        return {key: await self.get_int(key) for key in keys}

    async def close(self) -> None:
        self.closed = True


class FakeSearchIndex:
    """In-memory SearchIndex keyed by eventId."""

    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.fail = False
        self.upsert_calls = 0
        self._auto_id = 0

    async def ensure_index(self) -> bool:
        return False

    async def upsert(self, document: dict) -> None:
        self.upsert_calls += 1
        if self.fail:
            raise SearchIndexError("search cluster unavailable", status_code=503)
        doc_id = document.get("eventId")
        if not doc_id:
            self._auto_id += 1
            doc_id = f"auto-{self._auto_id}"
        self.documents[doc_id] = dict(document)

    async def search_by_field(self, field: str, value: str, page: int = 0, size: int = 20) -> Page:
        validate_paging(page, size)
        if self.fail:
            raise SearchIndexError("search cluster unavailable", status_code=503)
        hits = [d for d in self.documents.values() if d.get(field) == value]
        hits.sort(key=lambda d: d.get("timestamp") or "", reverse=True)
        return Page(
            content=hits[page * size:(page + 1) * size],
            page=page,
            size=size,
            total_elements=len(hits),
        )

    async def close(self) -> None:
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counter_store(clock):
    return FakeCounterStore(clock)


@pytest.fixture
def search_index():
    return FakeSearchIndex()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture
async def durable_store(engine):
    store = DurableEventStore(engine, timeout_seconds=5.0)
    await store.create_schema()
    return store


@pytest.fixture
def dead_letter_store(durable_store):
    return DeadLetterStore(durable_store.engine, timeout_seconds=5.0)


@pytest.fixture
def quarantine(dead_letter_store):
    return DeadLetterQuarantine(dead_letter_store)


@pytest.fixture
def breaker_config():
    return CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=30.0)


@pytest.fixture
def durable_breaker(breaker_config):
    return CircuitBreaker("durable", breaker_config)


@pytest.fixture
def search_breaker(breaker_config):
    return CircuitBreaker("search", breaker_config)


@pytest.fixture
def counters(counter_store, clock):
    return EventCounters(
        counter_store,
        rate_bucket_ttl_seconds=600,
        idempotency_ttl_seconds=86400,
        now_ms=clock,
    )


@pytest.fixture
def gate(counters, durable_store, durable_breaker):
    return IdempotencyGate(counters, durable_store, durable_breaker)


@pytest.fixture
def processor(gate, durable_store, search_index, counters, durable_breaker, search_breaker):
    return EventProcessor(
        gate=gate,
        durable_store=durable_store,
        search_index=search_index,
        counters=counters,
        durable_breaker=durable_breaker,
        search_breaker=search_breaker,
    )
