"""Read API: dashboard, rates, paged event queries, distributions and search."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query

from analytics.api.dependencies import (
    get_dashboard,
    get_queries,
    register_error_handlers,
    register_request_context,
)
from analytics.processing.counters import EventCounters
from analytics.readers.dashboard import DashboardReader
from analytics.readers.events import EventQueries
from analytics.schemas.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from analytics.sinks.factory import build_sinks
from config.config import AnalyticsConfig, get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

PageParam = Query(0, ge=0)
SizeParam = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


# -------------------------------------------------------------------------
# Dashboard (counter store)
# -------------------------------------------------------------------------


@router.get("/dashboard")
async def dashboard(reader: DashboardReader = Depends(get_dashboard)) -> dict[str, Any]:
    return await reader.summary()


@router.get("/rate")
async def rate(reader: DashboardReader = Depends(get_dashboard)) -> dict[str, int]:
    return await reader.rate()


# -------------------------------------------------------------------------
# Durable store queries
# -------------------------------------------------------------------------


@router.get("/events/by-type/{event_type}")
async def events_by_type(
    event_type: str,
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.by_type(event_type, page, size)).to_dict()


@router.get("/events/by-user/{user_id}")
async def events_by_user(
    user_id: str,
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.by_user(user_id, page, size)).to_dict()


@router.get("/events/date-range")
async def events_by_date_range(
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.by_date_range(start, end, page, size)).to_dict()


@router.get("/distribution/event-types")
async def event_type_distribution(
    queries: EventQueries = Depends(get_queries),
) -> list[dict[str, Any]]:
    return await queries.distribution("event-types")


@router.get("/distribution/regions")
async def region_distribution(
    queries: EventQueries = Depends(get_queries),
) -> list[dict[str, Any]]:
    return await queries.distribution("regions")


@router.get("/distribution/sources")
async def source_distribution(
    queries: EventQueries = Depends(get_queries),
) -> list[dict[str, Any]]:
    return await queries.distribution("sources")


# -------------------------------------------------------------------------
# Search index
# -------------------------------------------------------------------------


@router.get("/search/by-type/{event_type}")
async def search_by_type(
    event_type: str,
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.search("eventType", event_type, page, size)).to_dict()


@router.get("/search/by-user/{user_id}")
async def search_by_user(
    user_id: str,
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.search("userId", user_id, page, size)).to_dict()


@router.get("/search/by-region/{region}")
async def search_by_region(
    region: str,
    page: int = PageParam,
    size: int = SizeParam,
    queries: EventQueries = Depends(get_queries),
) -> dict[str, Any]:
    return (await queries.search("region", region, page, size)).to_dict()


def create_app(
    config: AnalyticsConfig | None = None,
    queries: EventQueries | None = None,
    dashboard: DashboardReader | None = None,
) -> FastAPI:
    """Build the read API.

    When queries/dashboard are not supplied they are built from config at
    startup and their sinks closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sinks = None
        if app.state.queries is None or app.state.dashboard is None:
            cfg = config or get_config()
            sinks = build_sinks(cfg)
            counters = EventCounters(
                sinks.counters,
                rate_bucket_ttl_seconds=cfg.processing.rate_bucket_ttl_seconds,
                idempotency_ttl_seconds=cfg.processing.idempotency_ttl_seconds,
            )
            app.state.queries = EventQueries(sinks.durable, sinks.search)
            app.state.dashboard = DashboardReader(counters, sinks.durable)
            logger.info("Read API sinks initialized")

        yield

        if sinks is not None:
            await sinks.close()
            logger.info("Read API sinks closed")

    app = FastAPI(title="Analytics Read API", lifespan=lifespan)
    app.state.queries = queries
    app.state.dashboard = dashboard
    app.include_router(router)
    register_error_handlers(app)
    register_request_context(app)
    return app


__all__ = ["create_app", "router"]
