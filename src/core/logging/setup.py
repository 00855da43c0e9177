"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_BACKUP_COUNT = 7

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiokafka",
    "aiohttp.access",
    "sqlalchemy.engine",
    "uvicorn.access",
    "httpx",
]


def setup_logging(
    name: str = "analytics",
    stage: str | None = None,
    level: int = logging.INFO,
    json_format: bool = False,
    log_dir: Path | None = None,
    worker_id: str | None = None,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure root logging for a process.

    Console output always goes to stdout; JSON lines when json_format is set,
    otherwise the colored console format. When log_dir is given, a daily
    rotating JSON file handler is added alongside it.

    Args:
        name: Logger name returned to the caller
        stage: Process role (consumer, api, ingest) tagged onto every record
        level: Root log level
        json_format: Emit JSON lines on stdout
        log_dir: Optional directory for rotating JSON log files
        worker_id: Worker identifier for context
        suppress_noisy: Quiet down Kafka, HTTP and SQL client loggers
    """
    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{stage or name}.log"
        file_handler = TimedRotatingFileHandler(
            log_file,
            when=DEFAULT_ROTATION_WHEN,
            backupCount=DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging initialized: file=%s, json=%s", log_file, json_format)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def parse_log_level(value: str | int) -> int:
    """Accept "debug"/"INFO"/10 style levels from CLI flags and config."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level
