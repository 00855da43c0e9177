"""
Structured logging module.

Provides JSON/console logging with worker and Kafka record context propagation.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.message_context import (
    MessageLogContext,
    clear_message_context,
    get_message_context,
    set_message_context,
)
from core.logging.setup import get_logger, parse_log_level, setup_logging
from core.logging.utilities import log_exception, log_startup_banner

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    "parse_log_level",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Message Context
    "MessageLogContext",
    "set_message_context",
    "get_message_context",
    "clear_message_context",
    # Utilities
    "log_exception",
    "log_startup_banner",
]
