"""
Core library: Reusable, infrastructure-agnostic components.

Modules:
    resilience  - Per-sink circuit breakers
    logging     - Structured JSON/console logging with record context
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers, worker ids

Design Principles:
    - No dependencies on Kafka, SQL, search or key-value drivers
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import ErrorCategory, ErrorClassifier

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
