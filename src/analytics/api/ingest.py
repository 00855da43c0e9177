"""Write API: publishes events to the user-events / system-events topics."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from aiokafka.errors import KafkaError
from fastapi import APIRouter, Body, Depends, FastAPI, Query, status
from fastapi.responses import JSONResponse

from analytics.api.dependencies import (
    error_response,
    get_producer,
    register_error_handlers,
    register_request_context,
)
from analytics.api.simulation import DEFAULT_SIMULATED_EVENTS, simulate_events
from analytics.common.producer import EventProducer
from analytics.schemas.events import EventRequest
from config.config import AnalyticsConfig, get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/events", tags=["events"])

MAX_BATCH_SIZE = 100


def _accepted(body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body)


@router.post("")
@router.post("/", include_in_schema=False)
async def publish_event(
    event: EventRequest,
    producer: EventProducer = Depends(get_producer),
) -> JSONResponse:
    topic = await producer.send(event)
    logger.info(
        "Publishing event",
        extra={"event_id": event.event_id, "event_type": event.event_type, "topic": topic},
    )
    return _accepted(
        {
            "status": "accepted",
            "eventId": event.event_id,
            "message": "Event queued for processing",
        }
    )


@router.post("/batch")
async def publish_batch(
    events: list[EventRequest] = Body(...),
    producer: EventProducer = Depends(get_producer),
) -> JSONResponse:
    if not events or len(events) > MAX_BATCH_SIZE:
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            f"Batch size must be between 1 and {MAX_BATCH_SIZE}",
        )

    count = await producer.send_many(events)
    logger.info("Publishing batch", extra={"batch_size": count})
    return _accepted(
        {"status": "accepted", "count": count, "message": "Batch queued for processing"}
    )


@router.post("/simulate")
async def simulate(
    count: int = Query(DEFAULT_SIMULATED_EVENTS),
    producer: EventProducer = Depends(get_producer),
) -> JSONResponse:
    if count < 1:
        return error_response(status.HTTP_400_BAD_REQUEST, "count must be at least 1")

    events = simulate_events(count)
    await producer.send_many(events)
    logger.info("Published simulated events", extra={"batch_size": len(events)})
    return _accepted(
        {
            "status": "accepted",
            "simulated": len(events),
            "firstEventId": events[0].event_id,
        }
    )


@router.get("/health")
async def health(producer: EventProducer = Depends(get_producer)) -> dict[str, Any]:
    return {"status": "ok", "kafkaConnected": producer.is_started}


async def _kafka_error_handler(request, exc: Exception) -> JSONResponse:
    logger.error(
        "Failed to publish to Kafka",
        extra={"http_url": str(request.url), "status_code": 503, "error_message": str(exc)},
    )
    return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Event broker unavailable")


def create_app(
    config: AnalyticsConfig | None = None,
    producer: EventProducer | None = None,
) -> FastAPI:
    """Build the write API.

    A supplied producer is used as is (and not started or stopped here);
    otherwise one is built from config and started with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if app.state.producer is None:
            cfg = config or get_config()
            owned = EventProducer(cfg.kafka)
            app.state.producer = owned
            try:
                await owned.start()
            except KafkaError as e:
                # Serve anyway; publishes answer 503 until restarted
                logger.error(
                    "Could not connect producer to Kafka",
                    extra={"error_message": str(e)},
                )

        yield

        if owned is not None:
            await owned.stop()

    app = FastAPI(title="Analytics Ingest API", lifespan=lifespan)
    app.state.producer = producer
    app.include_router(router)
    register_error_handlers(app)
    register_request_context(app)
    app.add_exception_handler(KafkaError, _kafka_error_handler)
    return app


__all__ = ["MAX_BATCH_SIZE", "create_app", "router"]
