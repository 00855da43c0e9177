"""Per-call deadlines for sink operations."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from core.errors.exceptions import SinkTimeoutError

T = TypeVar("T")


async def call_with_deadline(
    awaitable: Awaitable[T],
    sink: str,
    operation: str,
    timeout_seconds: float | None,
) -> T:
    """Await with a deadline; expiry raises SinkTimeoutError (a transient sink failure)."""
    if timeout_seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise SinkTimeoutError(sink, operation, timeout_seconds) from e
