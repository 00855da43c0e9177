"""
Sink error classification.

Maps driver exceptions raised by the SQL, search and key-value clients to
ErrorCategory so circuit breakers count only failures that say something
about the health of the sink. Classification goes by exception type name
(walking the MRO) so this module does not import any driver.
"""

import asyncio

from core.errors.exceptions import PipelineError
from core.types import ErrorCategory

# Exception type names per category, across sqlalchemy / asyncpg / aiohttp / redis
SINK_ERROR_MAPPINGS = {
    "transient": [
        # sqlalchemy
        "OperationalError",
        "InterfaceError",
        "DisconnectionError",
        "TimeoutError",
        # asyncpg
        "ConnectionDoesNotExistError",
        "CannotConnectNowError",
        "TooManyConnectionsError",
        "PostgresConnectionError",
        # aiohttp
        "ClientConnectionError",
        "ClientConnectorError",
        "ServerDisconnectedError",
        "ServerTimeoutError",
        "ClientOSError",
        "ClientPayloadError",
        # redis
        "ConnectionError",
        "BusyLoadingError",
        # stdlib
        "ConnectionRefusedError",
        "ConnectionResetError",
        "OSError",
    ],
    "permanent": [
        "IntegrityError",
        "DataError",
        "ProgrammingError",
        "UniqueViolationError",
        "ResponseError",
        "ValidationError",
        "ValueError",
        "TypeError",
        "KeyError",
    ],
}


def classify_error_type(error_type_name: str) -> str | None:
    """Return "transient", "permanent" or None for an exception type name."""
    for category, error_types in SINK_ERROR_MAPPINGS.items():
        if error_type_name in error_types:
            return category
    return None


class SinkErrorClassifier:
    """ErrorClassifier implementation used by the sink circuit breakers."""

    def classify_error(self, error: Exception) -> ErrorCategory:
        if isinstance(error, PipelineError):
            return error.category

        if isinstance(error, asyncio.TimeoutError):
            return ErrorCategory.TRANSIENT

        for klass in type(error).__mro__:
            category = classify_error_type(klass.__name__)
            if category == "transient":
                return ErrorCategory.TRANSIENT
            if category == "permanent":
                return ErrorCategory.PERMANENT

        return ErrorCategory.UNKNOWN

    def is_transient(self, error: Exception) -> bool:
        return self.classify_error(error) == ErrorCategory.TRANSIENT


__all__ = [
    "SINK_ERROR_MAPPINGS",
    "SinkErrorClassifier",
    "classify_error_type",
]
