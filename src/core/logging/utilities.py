"""Logging utility functions."""

import logging
from typing import Any

# Field label / format pairs for the startup banner
_BANNER_FIELDS = [
    ("worker_id", "Worker:       {}"),
    ("topics", "Topics:       {}"),
    ("consumer_group", "Group:        {}"),
    ("concurrency", "Concurrency:  {}"),
    ("health_port", "Health:       http://localhost:{}"),
    ("metrics_port", "Metrics:      http://localhost:{}/metrics"),
    ("listen", "Listening on: {}"),
]


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Extracts error_category from PipelineError subclasses and truncates very
    long driver messages.

    Example:
        try:
            await store.save(event)
        except DurableStoreError as e:
            log_exception(logger, e, "Durable write failed", event_id=event.event_id)
    """
    if kwargs.get("error_category") is None and hasattr(exc, "category"):
        cat = exc.category
        kwargs["error_category"] = cat.value if hasattr(cat, "value") else str(cat)

    error_msg = str(exc)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg
    kwargs.setdefault("error_type", type(exc).__name__)

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=kwargs)
    else:
        logger.log(level, msg, extra=kwargs)


def log_startup_banner(
    logger: logging.Logger,
    worker_name: str,
    **kwargs: Any,
) -> None:
    """
    Log startup banner with worker configuration.

    Example:
        log_startup_banner(
            logger,
            worker_name="Analytics Event Consumer",
            topics="user-events, system-events",
            consumer_group="analytics-group",
            concurrency=3,
        )
    """
    separator = "=" * 50
    lines = ["", separator, worker_name, separator]

    for field_name, fmt in _BANNER_FIELDS:
        value = kwargs.get(field_name)
        if value:
            lines.append(fmt.format(value))

    lines.append(separator)
    lines.append("")

    logger.info("\n".join(lines))
