"""Shared JSON serialization utilities for type-safe JSON encoding."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, (Path, UUID)):
        return True, str(obj)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    `default=` hook for json.dumps used by log lines and stored payloads.

    - datetime/date -> ISO 8601 string
    - Decimal -> float
    - Path/UUID -> string
    - Enums -> value
    - Everything else -> string (fallback)

    Numbers stay numbers, so downstream aggregations over logged or
    indexed fields keep working.
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "value"):
        return obj.value
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
