"""Shared FastAPI dependencies and error handlers for the HTTP APIs."""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from analytics.common.producer import EventProducer, ProducerNotStartedError
from analytics.readers.dashboard import DashboardReader
from analytics.readers.events import EventQueries
from core.errors.exceptions import CircuitOpenError, SinkError
from core.logging import set_log_context

logger = logging.getLogger(__name__)


def get_dashboard(request: Request) -> DashboardReader:
    return request.app.state.dashboard


def get_queries(request: Request) -> EventQueries:
    return request.app.state.queries


def get_producer(request: Request) -> EventProducer:
    return request.app.state.producer


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "Storage unavailable",
        extra={
            "http_method": request.method,
            "http_url": str(request.url),
            "status_code": 503,
            "error_type": type(exc).__name__,
            "error_message": str(exc)[:500],
        },
    )
    return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage temporarily unavailable")


async def _producer_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "Event broker unavailable",
        extra={"http_url": str(request.url), "status_code": 503, "error_message": str(exc)},
    )
    return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Event broker unavailable")


async def _value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


REQUEST_ID_HEADER = "X-Request-ID"


def register_request_context(app: FastAPI) -> None:
    """Tag log lines with the caller's X-Request-ID, or a fresh one, and echo it back."""

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_log_context(request_id=request_id)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SinkError, _storage_error_handler)
    app.add_exception_handler(CircuitOpenError, _storage_error_handler)
    app.add_exception_handler(ProducerNotStartedError, _producer_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)


__all__ = [
    "error_response",
    "get_dashboard",
    "get_producer",
    "get_queries",
    "register_error_handlers",
    "register_request_context",
]
