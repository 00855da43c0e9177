"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.logging.message_context import get_message_context
from core.utils.json_serializers import json_serializer


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs to remove credentials before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Identifiers
        "event_id",
        "event_type",
        "topic",
        "consumer_group",
        "worker_id",
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "status_code",
        # Errors
        "error_category",
        "error_message",
        "error_type",
        "error",
        # Processing
        "outcome",
        "skipped_steps",
        "step",
        "sink",
        "operation",
        "batch_size",
        "records_processed",
        "records_failed",
        "records_total",
        "duration_ms",
        "processing_time_ms",
        # Resilience
        "circuit_name",
        "circuit_state",
        "retry_after",
        "timeout_seconds",
        # Message transport metadata
        "message_topic",
        "message_partition",
        "message_offset",
        "dlq_topic",
    ]

    # Keep numbers numeric so log aggregations work
    NUMERIC_FIELDS = {
        "duration_ms": float,
        "processing_time_ms": float,
        "retry_after": float,
        "timeout_seconds": float,
        "http_status": int,
        "status_code": int,
        "batch_size": int,
        "records_processed": int,
        "records_failed": int,
        "records_total": int,
        "message_partition": int,
        "message_offset": int,
    }

    URL_FIELDS = ["http_url", "url"]

    # user:password@ in connection URLs, plus sensitive query parameters
    USERINFO_PATTERN = re.compile(r"(//)[^/@\s]+@")
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(token|key|secret|password|auth)=[^&]*",
        re.IGNORECASE,
    )

    def _sanitize_url(self, url: str) -> str:
        url = self.USERINFO_PATTERN.sub(r"\1[REDACTED]@", url)
        return self.SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", url)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return self._sanitize_url(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any]) -> None:
        for field, value in get_log_context().items():
            if value:
                log_entry[field] = value
        log_entry.update(get_message_context())

    def _inject_extra_fields(
        self, log_entry: dict[str, Any], record: logging.LogRecord
    ) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(
        self, log_entry: dict[str, Any], record: logging.LogRecord
    ) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry)

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        color = self.COLORS.get(record.levelno, "")
        if not self._use_colors or not color:
            return level_name
        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        tags = []
        if log_context["stage"]:
            tags.append(f"[{log_context['stage']}]")

        event_id = getattr(record, "event_id", None) or log_context.get("event_id")
        if event_id:
            tags.append(f"[evt:{event_id[:8]}]")

        message_context = get_message_context()
        if message_context:
            tags.append(
                f"[{message_context['message_topic']}"
                f":{message_context['message_partition']}"
                f"@{message_context['message_offset']}]"
            )
        return tags

    def format(self, record: logging.LogRecord) -> str:
        log_context = get_log_context()
        prefix = " - ".join(
            [
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                self._format_level_name(record),
                record.name,
            ]
        )
        tags = self._build_tags(record, log_context)

        line = f"{prefix} - {' '.join(tags)} {record.getMessage()}" if tags else (
            f"{prefix} - {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
