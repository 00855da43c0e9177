"""
Unified exception hierarchy for the analytics pipeline.

Provides typed exceptions with a category so the consumer, the processor and
the circuit breakers can make handling decisions without string matching.
"""


# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for breaker and routing decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Transient / Permanent bases
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Circuit Breaker Errors
# =============================================================================


class CircuitOpenError(PipelineError):
    """Circuit breaker is open, rejecting requests."""

    category = ErrorCategory.CIRCUIT_OPEN

    def __init__(
        self,
        circuit_name: str,
        retry_after: float,
        cause: Exception | None = None,
    ):
        message = f"Circuit '{circuit_name}' is open"
        super().__init__(message, cause, {"circuit_name": circuit_name})
        self.circuit_name = circuit_name
        self.retry_after = retry_after


# =============================================================================
# Record Errors (quarantined by the consumer)
# =============================================================================


class EventDecodeError(PermanentError):
    """Record value is not valid UTF-8 JSON or not a JSON object."""

    pass


class EventValidationError(PermanentError):
    """Decoded event is missing required fields or has the wrong shape."""

    pass


class DuplicateEventError(PermanentError):
    """Durable insert hit the unique constraint on event_id."""

    def __init__(self, event_id: str | None, cause: Exception | None = None):
        super().__init__(
            f"Event '{event_id}' already stored", cause, {"event_id": event_id}
        )
        self.event_id = event_id


# =============================================================================
# Sink Errors
# =============================================================================


class SinkError(TransientError):
    """Error from one of the backing stores."""

    sink: str = "unknown"


class DurableStoreError(SinkError):
    """Error from the relational event store.

    Defaults to TRANSIENT. Driver errors that describe the row rather than
    the database (bad data, constraint violations) are raised as PERMANENT.
    """

    sink = "durable"

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        category: ErrorCategory | None = None,
    ):
        super().__init__(message, cause, context)
        if category is not None:
            self.category = category


class SearchIndexError(SinkError):
    """Error from the search index."""

    sink = "search"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        category: ErrorCategory | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        if category is not None:
            self.category = category


class CounterStoreError(SinkError):
    """Error from the key-value counter store."""

    sink = "counters"


class SinkTimeoutError(SinkError):
    """Sink call exceeded its per-call deadline."""

    def __init__(self, sink: str, operation: str, timeout_seconds: float):
        super().__init__(
            f"{sink}.{operation} exceeded {timeout_seconds:.2f}s deadline",
            context={"sink": sink, "operation": operation},
        )
        self.sink = sink
        self.operation = operation
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN
