"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Used by the circuit breakers to decide which failures count against a
    sink, and by the consumer to decide how a failed record is reported.

    Categories:
        TRANSIENT: Temporary failures of a sink (connection loss, timeouts,
                   5xx responses). Counted against the sink's breaker.
        AUTH: Authentication failures requiring credential refresh
        PERMANENT: Failures that will not succeed on retry
                   (malformed JSON, validation errors, uniqueness conflicts)
        CIRCUIT_OPEN: Circuit breaker is open, rejecting fast without attempting
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    Sink adapters (SQL, search, KV) implement this protocol to classify
    driver-specific errors into standard categories.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        """
        Classify an exception into an error category.

        Args:
            error: Exception to classify

        Returns:
            ErrorCategory indicating how to handle this error
        """
        ...


__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
