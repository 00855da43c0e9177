"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Sink error classifier for the circuit breakers
"""

from core.errors.classifiers import SinkErrorClassifier, classify_error_type
from core.errors.exceptions import (
    CircuitOpenError,
    CounterStoreError,
    DuplicateEventError,
    DurableStoreError,
    ErrorCategory,
    EventDecodeError,
    EventValidationError,
    PermanentError,
    PipelineError,
    SearchIndexError,
    SinkError,
    SinkTimeoutError,
    TransientError,
    classify_http_status,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "TransientError",
    "PermanentError",
    "CircuitOpenError",
    # Record errors
    "EventDecodeError",
    "EventValidationError",
    "DuplicateEventError",
    # Sink errors
    "SinkError",
    "DurableStoreError",
    "SearchIndexError",
    "CounterStoreError",
    "SinkTimeoutError",
    # Classification
    "classify_http_status",
    "classify_error_type",
    "SinkErrorClassifier",
]
