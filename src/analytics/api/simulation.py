"""Synthetic event generation for load testing the pipeline."""

import random
import time
from typing import Any

from analytics.schemas.events import EventRequest

DEFAULT_SIMULATED_EVENTS = 50
MAX_SIMULATED_EVENTS = 500

SIMULATED_EVENT_TYPES = (
    "PAGE_VIEW",
    "PURCHASE",
    "LOGIN",
    "LOGOUT",
    "ADD_TO_CART",
    "SEARCH",
    "ERROR",
    "CLICK",
)
SIMULATED_USERS = ("user_101", "user_202", "user_303", "user_404", "user_505")
SIMULATED_SOURCES = ("web", "mobile-android", "mobile-ios")
SIMULATED_REGIONS = ("IN", "US", "EU", "APAC")

_PAGES = ("/home", "/products", "/cart", "/checkout")
_ERROR_CODES = ("500", "404", "503")


def build_payload(event_type: str, rng: random.Random) -> dict[str, Any]:
    """Payload shaped by event type; every payload carries timestamp_ms."""
    payload: dict[str, Any] = {"timestamp_ms": time.time_ns() // 1_000_000}
    if event_type == "PAGE_VIEW":
        payload["page"] = rng.choice(_PAGES)
        payload["duration_ms"] = rng.randrange(5000) + 500
    elif event_type == "PURCHASE":
        payload["amount"] = round(rng.random() * 5000 + 100, 2)
        payload["currency"] = "INR"
        payload["items"] = rng.randrange(5) + 1
    elif event_type == "ERROR":
        payload["errorCode"] = rng.choice(_ERROR_CODES)
        payload["message"] = "Simulated error"
    else:
        payload["action"] = event_type.lower()
    return payload


def simulate_events(count: int, rng: random.Random | None = None) -> list[EventRequest]:
    """Random events across the known users, sources and regions.

    count is capped at MAX_SIMULATED_EVENTS.
    """
    rng = rng or random.Random()
    count = min(count, MAX_SIMULATED_EVENTS)

    events = []
    for _ in range(count):
        event_type = rng.choice(SIMULATED_EVENT_TYPES)
        events.append(
            EventRequest(
                eventType=event_type,
                userId=rng.choice(SIMULATED_USERS),
                sessionId=f"session_{rng.randrange(1000)}",
                payload=build_payload(event_type, rng),
                source=rng.choice(SIMULATED_SOURCES),
                region=rng.choice(SIMULATED_REGIONS),
            )
        )
    return events


__all__ = [
    "DEFAULT_SIMULATED_EVENTS",
    "MAX_SIMULATED_EVENTS",
    "SIMULATED_EVENT_TYPES",
    "build_payload",
    "simulate_events",
]
