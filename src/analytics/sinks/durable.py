"""
Durable event store (PostgreSQL via SQLAlchemy async).

Tables:
    events              One row per stored event; event_id is unique so a
                        redelivered event cannot produce a second row.
    dead_letter_events  Quarantined raw record values.

Every call runs under a per-call deadline. Driver failures are wrapped in
DurableStoreError, deadline expiry in SinkTimeoutError, and a unique
constraint conflict on insert in DuplicateEventError.

Usage:
    store = DurableEventStore.from_settings(config.postgres, timeout_seconds=5.0)
    await store.create_schema()
    row_id = await store.insert(event)
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    desc,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from analytics.schemas.events import AnalyticsEvent, format_timestamp
from analytics.schemas.paging import Page, validate_paging
from analytics.sinks.deadline import call_with_deadline
from config.config import PostgresSettings
from core.errors.classifiers import SinkErrorClassifier
from core.errors.exceptions import DuplicateEventError, DurableStoreError
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

SINK_NAME = "durable"

EVENT_ID_CONSTRAINT = "uq_events_event_id"

_classifier = SinkErrorClassifier()

metadata = MetaData()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
PayloadType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer(), "sqlite")

events_table = Table(
    "events",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("event_id", String(255), nullable=True),
    Column("event_type", String(100), nullable=False, index=True),
    Column("user_id", String(255), nullable=True, index=True),
    Column("session_id", String(255), nullable=True),
    Column("payload", PayloadType, nullable=True),
    Column("source", String(100), nullable=True),
    Column("region", String(50), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("processed_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("event_id", name=EVENT_ID_CONSTRAINT),
)

dead_letter_events_table = Table(
    "dead_letter_events",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("event_id", String(255), nullable=True),
    Column("raw_payload", Text, nullable=True),
    Column("error_message", Text, nullable=True),
    Column("retry_count", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

# Distribution queries; NULLs are excluded for the optional columns
DISTRIBUTION_FIELDS = {
    "event_type": events_table.c.event_type,
    "region": events_table.c.region,
    "source": events_table.c.source,
}


def _as_utc(value: datetime) -> datetime:
    """Normalize to UTC; naive values (SQLite round-trips) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_event_id_conflict(error: IntegrityError) -> bool:
    """True when the violated constraint is the unique index on event_id.

    PostgreSQL names the constraint; SQLite names the column.
    """
    message = str(error.orig)
    return EVENT_ID_CONSTRAINT in message or "UNIQUE constraint failed: events.event_id" in message


def row_to_dict(row: Any) -> dict[str, Any]:
    """Render an events row in the read API's camelCase shape."""
    m = row._mapping
    return {
        "id": m["id"],
        "eventId": m["event_id"],
        "eventType": m["event_type"],
        "userId": m["user_id"],
        "sessionId": m["session_id"],
        "payload": m["payload"],
        "source": m["source"],
        "region": m["region"],
        "createdAt": format_timestamp(_as_utc(m["created_at"])),
        "processedAt": format_timestamp(_as_utc(m["processed_at"])),
    }


def create_engine_from_settings(settings: PostgresSettings) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": settings.echo}
    if not settings.dsn.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(settings.dsn, **kwargs)


class DurableEventStore:
    """Relational event store behind the durable circuit breaker."""

    def __init__(self, engine: AsyncEngine, timeout_seconds: float | None = 5.0):
        self.engine = engine
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls, settings: PostgresSettings, timeout_seconds: float | None = 5.0
    ) -> "DurableEventStore":
        return cls(create_engine_from_settings(settings), timeout_seconds)

    async def _run(self, operation: str, coro):
        try:
            return await call_with_deadline(coro, SINK_NAME, operation, self.timeout_seconds)
        except (SQLAlchemyError, OSError) as e:
            category = None
            if _classifier.classify_error(e) == ErrorCategory.PERMANENT:
                category = ErrorCategory.PERMANENT
            raise DurableStoreError(
                f"Durable store {operation} failed: {e}",
                cause=e,
                context={"operation": operation},
                category=category,
            ) from e

    async def create_schema(self) -> None:
        async def _create():
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)

        await self._run("create_schema", _create())
        logger.info("Durable store schema ready")

    async def insert(self, event: AnalyticsEvent, processed_at: datetime | None = None) -> int:
        """Insert one event in its own transaction and return the new row id.

        Raises:
            DuplicateEventError: event_id already stored
            DurableStoreError: any other driver failure
            SinkTimeoutError: deadline exceeded
        """
        values = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "user_id": event.user_id,
            "session_id": event.session_id,
            "payload": event.payload,
            "source": event.source,
            "region": event.region,
            "created_at": _as_utc(event.timestamp),
            "processed_at": _as_utc(processed_at or datetime.now(UTC)),
        }

        async def _insert() -> int:
            async with self.engine.begin() as conn:
                result = await conn.execute(events_table.insert().values(**values))
                return result.inserted_primary_key[0]

        try:
            return await self._run("insert", _insert())
        except DurableStoreError as e:
            if isinstance(e.cause, IntegrityError) and is_event_id_conflict(e.cause):
                raise DuplicateEventError(event.event_id, cause=e.cause) from e.cause
            raise

    async def exists(self, event_id: str) -> bool:
        async def _exists() -> bool:
            stmt = select(events_table.c.id).where(events_table.c.event_id == event_id).limit(1)
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.first() is not None

        return await self._run("exists", _exists())

    async def count(self) -> int:
        async def _count() -> int:
            async with self.engine.connect() as conn:
                result = await conn.execute(select(func.count()).select_from(events_table))
                return int(result.scalar_one())

        return await self._run("count", _count())

    async def _find_page(self, operation: str, condition, page: int, size: int) -> Page:
        validate_paging(page, size)

        async def _find() -> Page:
            count_stmt = select(func.count()).select_from(events_table).where(condition)
            rows_stmt = (
                select(events_table)
                .where(condition)
                .order_by(desc(events_table.c.created_at), desc(events_table.c.id))
                .offset(page * size)
                .limit(size)
            )
            async with self.engine.connect() as conn:
                total = int((await conn.execute(count_stmt)).scalar_one())
                rows = (await conn.execute(rows_stmt)).all()
            return Page(
                content=[row_to_dict(row) for row in rows],
                page=page,
                size=size,
                total_elements=total,
            )

        return await self._run(operation, _find())

    async def find_by_type(self, event_type: str, page: int = 0, size: int = 20) -> Page:
        return await self._find_page(
            "find_by_type", events_table.c.event_type == event_type, page, size
        )

    async def find_by_user(self, user_id: str, page: int = 0, size: int = 20) -> Page:
        return await self._find_page(
            "find_by_user", events_table.c.user_id == user_id, page, size
        )

    async def find_by_date_range(
        self, start: datetime, end: datetime, page: int = 0, size: int = 20
    ) -> Page:
        """Events whose created_at falls within [start, end]."""
        condition = events_table.c.created_at.between(_as_utc(start), _as_utc(end))
        return await self._find_page("find_by_date_range", condition, page, size)

    async def count_by_field(self, field: str) -> list[tuple[str, int]]:
        """(value, count) pairs grouped by event_type, region or source, largest first."""
        column = DISTRIBUTION_FIELDS.get(field)
        if column is None:
            raise ValueError(f"Unsupported distribution field: {field}")

        async def _count_by() -> list[tuple[str, int]]:
            count_col = func.count().label("count")
            stmt = (
                select(column, count_col)
                .where(column.is_not(None))
                .group_by(column)
                .order_by(desc(count_col), column)
            )
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
            return [(row[0], int(row[1])) for row in rows]

        return await self._run("count_by_field", _count_by())

    async def close(self) -> None:
        await self.engine.dispose()


class DeadLetterStore:
    """Append-only store for quarantined records. Shares the durable engine."""

    def __init__(self, engine: AsyncEngine, timeout_seconds: float | None = 5.0):
        self.engine = engine
        self.timeout_seconds = timeout_seconds

    async def save(
        self,
        raw_payload: str | None,
        error_message: str | None,
        event_id: str | None = None,
        retry_count: int = 0,
    ) -> int:
        values = {
            "event_id": event_id,
            "raw_payload": raw_payload,
            "error_message": error_message,
            "retry_count": retry_count,
            "created_at": datetime.now(UTC),
        }

        async def _save() -> int:
            async with self.engine.begin() as conn:
                result = await conn.execute(dead_letter_events_table.insert().values(**values))
                return result.inserted_primary_key[0]

        try:
            return await call_with_deadline(_save(), SINK_NAME, "dead_letter_save", self.timeout_seconds)
        except (SQLAlchemyError, OSError) as e:
            raise DurableStoreError(f"Dead-letter save failed: {e}", cause=e) from e

    async def count(self) -> int:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(dead_letter_events_table))
            return int(result.scalar_one())


__all__ = [
    "DeadLetterStore",
    "DurableEventStore",
    "create_engine_from_settings",
    "dead_letter_events_table",
    "events_table",
    "metadata",
    "row_to_dict",
]
