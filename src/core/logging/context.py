"""Context variables for structured logging."""

from contextvars import ContextVar

_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_worker_id: ContextVar[str] = ContextVar("worker_id", default="")
_event_id: ContextVar[str] = ContextVar("event_id", default="")
_request_id: ContextVar[str] = ContextVar("request_id", default="")


def set_log_context(
    stage: str | None = None,
    worker_id: str | None = None,
    event_id: str | None = None,
    request_id: str | None = None,
) -> None:
    if stage is not None:
        _stage_name.set(stage)
    if worker_id is not None:
        _worker_id.set(worker_id)
    if event_id is not None:
        _event_id.set(event_id)
    if request_id is not None:
        _request_id.set(request_id)


def get_log_context() -> dict[str, str]:
    return {
        "stage": _stage_name.get(),
        "worker_id": _worker_id.get(),
        "event_id": _event_id.get(),
        "request_id": _request_id.get(),
    }


def clear_log_context() -> None:
    _stage_name.set("")
    _worker_id.set("")
    _event_id.set("")
    _request_id.set("")
