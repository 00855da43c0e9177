"""Wire and result schemas."""

from analytics.schemas.events import (
    KNOWN_EVENT_TYPES,
    SYSTEM_EVENT_TYPES,
    AnalyticsEvent,
    EventRequest,
    decode_event,
    extract_event_id,
    resolve_topic,
)
from analytics.schemas.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page

__all__ = [
    "AnalyticsEvent",
    "EventRequest",
    "KNOWN_EVENT_TYPES",
    "SYSTEM_EVENT_TYPES",
    "decode_event",
    "extract_event_id",
    "resolve_topic",
    "Page",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
]
