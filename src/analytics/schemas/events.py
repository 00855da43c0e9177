"""
Analytics event schemas.

Contains the Pydantic model for events on the wire (Kafka record values and
ingest API bodies) plus the helpers that decide topic routing, partition keys
and the search document shape.

Wire format (camelCase, UTF-8 JSON):
    {
      "eventId": "2f6c...",
      "eventType": "PURCHASE",
      "userId": "u1",
      "sessionId": "session_42",
      "payload": {"amount": 99},
      "source": "web",
      "region": "IN",
      "timestamp": "2024-01-02T03:04:05.678Z"
    }
"""

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from core.errors.exceptions import EventDecodeError, EventValidationError

KNOWN_EVENT_TYPES = (
    "PAGE_VIEW",
    "PURCHASE",
    "LOGIN",
    "LOGOUT",
    "ADD_TO_CART",
    "SEARCH",
    "ERROR",
    "CLICK",
    "SYSTEM_HEALTH",
    "LATENCY",
    "SERVER_START",
)

# Routed to the system topic; everything else (unknown types included) is a user event
SYSTEM_EVENT_TYPES = frozenset({"ERROR", "SYSTEM_HEALTH", "LATENCY", "SERVER_START"})


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch number into an aware UTC datetime.

    Returns None when the value cannot be interpreted. Epoch values above
    1e11 are taken as milliseconds, otherwise seconds.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Millisecond precision with a Z suffix, e.g. 2024-01-02T03:04:05.678Z."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AnalyticsEvent(BaseModel):
    """An analytics event as carried on the user-events / system-events topics.

    Attributes:
        event_id: Client-assigned idempotency key; optional on the consumer side
        event_type: Event type (PAGE_VIEW, PURCHASE, ...); unknown types are accepted
        user_id: User the event belongs to (also the partition key when present)
        session_id: Client session
        payload: Free-form event attributes
        source: Emitting client (web, mobile-android, mobile-ios)
        region: Region code (IN, US, EU, APAC)
        timestamp: When the event happened; absent or unparseable means "now"
    """

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    event_id: str | None = Field(default=None, alias="eventId")
    event_type: str = Field(..., alias="eventType")
    user_id: str | None = Field(default=None, alias="userId")
    session_id: str | None = Field(default=None, alias="sessionId")
    payload: dict[str, Any] | None = Field(default=None)
    source: str | None = Field(default=None)
    region: str | None = Field(default=None)
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("event_type", mode="before")
    @classmethod
    def validate_event_type(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("eventType is required")
        return v.strip() if isinstance(v, str) else v

    @field_validator("event_id", mode="before")
    @classmethod
    def blank_event_id_is_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def lenient_timestamp(cls, v: Any) -> datetime:
        return parse_timestamp(v) or utc_now()

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @property
    def partition_key(self) -> str | None:
        """userId when present, else eventId."""
        return self.user_id if self.user_id is not None else self.event_id

    @property
    def is_system_event(self) -> bool:
        return self.event_type.upper() in SYSTEM_EVENT_TYPES

    def to_wire(self) -> dict[str, Any]:
        """camelCase mapping with null fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_wire(), ensure_ascii=False).encode("utf-8")

    def to_search_document(self) -> dict[str, Any]:
        """Search index document; keyed by eventId."""
        return {
            "eventId": self.event_id,
            "eventType": self.event_type,
            "userId": self.user_id,
            "sessionId": self.session_id,
            "payload": self.payload,
            "source": self.source,
            "region": self.region,
            "timestamp": format_timestamp(self.timestamp),
        }


class EventRequest(AnalyticsEvent):
    """Ingest API body: payload is required and eventId defaults to a fresh UUID."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="eventId")
    payload: dict[str, Any] = Field(...)

    @field_validator("event_id", mode="before")
    @classmethod
    def blank_event_id_is_missing(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return str(uuid.uuid4())
        return v


def resolve_topic(event_type: str | None, user_topic: str, system_topic: str) -> str:
    """ERROR, SYSTEM_HEALTH, LATENCY and SERVER_START go to the system topic."""
    if event_type and event_type.upper() in SYSTEM_EVENT_TYPES:
        return system_topic
    return user_topic


def decode_event(raw: bytes | str | None) -> AnalyticsEvent:
    """Decode a Kafka record value into an AnalyticsEvent.

    Raises:
        EventDecodeError: value is not UTF-8 JSON or not a JSON object
        EventValidationError: required fields missing or of the wrong shape
    """
    if raw is None:
        raise EventDecodeError("Record has no value")

    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EventDecodeError(f"Malformed event JSON: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise EventDecodeError(
            f"Event JSON must be an object, got {type(data).__name__}"
        )

    try:
        return AnalyticsEvent.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) or "event" for err in e.errors()
        )
        raise EventValidationError(
            f"Invalid event ({fields}): {e.errors()[0]['msg']}",
            cause=e,
            context={"event_id": data.get("eventId")},
        ) from e


def extract_event_id(raw: str | bytes | None) -> str | None:
    """Best-effort eventId from a raw record value; None when not a JSON object."""
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    event_id = data.get("eventId")
    if event_id is None:
        return None
    return str(event_id)[:255]


__all__ = [
    "AnalyticsEvent",
    "EventRequest",
    "KNOWN_EVENT_TYPES",
    "SYSTEM_EVENT_TYPES",
    "decode_event",
    "extract_event_id",
    "format_timestamp",
    "parse_timestamp",
    "resolve_topic",
    "utc_now",
]
