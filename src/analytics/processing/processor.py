"""
Event processor: gate, persist, index, count, mark.

Persist and index run through their own circuit breakers. A breaker that is
open, or a sink failure while it is closed, skips that step and processing
carries on (degraded fan-out). Counting and marking are not breaker
protected; their failures propagate so the consumer quarantines the record.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from analytics.common.metrics import record_event_outcome, record_sink_step_skipped
from analytics.processing.counters import EventCounters
from analytics.processing.idempotency import IdempotencyGate
from analytics.schemas.events import AnalyticsEvent
from analytics.sinks.durable import DurableEventStore
from analytics.sinks.search import SearchIndex
from core.errors.exceptions import CircuitOpenError, DuplicateEventError, SinkError
from core.logging import log_exception, set_log_context
from core.resilience import CircuitBreaker

logger = logging.getLogger(__name__)


class ProcessingOutcome(Enum):
    DONE = "done"
    DROPPED = "dropped"


@dataclass
class ProcessingResult:
    """Terminal state of one event plus the sink steps that were skipped."""

    outcome: ProcessingOutcome
    event_id: str | None = None
    skipped_steps: list[str] = field(default_factory=list)
    reason: str | None = None
    duration_ms: int = 0

    @property
    def degraded(self) -> bool:
        return bool(self.skipped_steps)


class EventProcessor:
    def __init__(
        self,
        gate: IdempotencyGate,
        durable_store: DurableEventStore,
        search_index: SearchIndex,
        counters: EventCounters,
        durable_breaker: CircuitBreaker,
        search_breaker: CircuitBreaker,
    ):
        self.gate = gate
        self.durable_store = durable_store
        self.search_index = search_index
        self.counters = counters
        self.durable_breaker = durable_breaker
        self.search_breaker = search_breaker

    async def process(self, event: AnalyticsEvent) -> ProcessingResult:
        """Run one event through the pipeline.

        Raises:
            SinkError: counter or marker update failed (steps 4 and 5)
        """
        start = time.perf_counter()
        set_log_context(event_id=event.event_id or "")

        if await self.gate.is_duplicate(event.event_id):
            logger.info(
                "Duplicate event dropped",
                extra={"event_id": event.event_id, "event_type": event.event_type, "outcome": "duplicate"},
            )
            return self._finish(
                ProcessingResult(ProcessingOutcome.DROPPED, event.event_id, reason="duplicate"),
                start,
            )

        skipped: list[str] = []

        try:
            await self._run_step(
                self.durable_breaker,
                "durable",
                lambda: self.durable_store.insert(event, processed_at=datetime.now(UTC)),
                event,
                skipped,
            )
        except DuplicateEventError:
            # Concurrent delivery won the race to the unique constraint
            logger.info(
                "Duplicate event rejected by durable store",
                extra={"event_id": event.event_id, "event_type": event.event_type, "outcome": "duplicate"},
            )
            return self._finish(
                ProcessingResult(ProcessingOutcome.DROPPED, event.event_id, reason="duplicate"),
                start,
            )

        await self._run_step(
            self.search_breaker,
            "search",
            lambda: self.search_index.upsert(event.to_search_document()),
            event,
            skipped,
        )

        await self.counters.record_event(event)

        if event.event_id:
            await self.counters.mark_processed(event.event_id)

        result = ProcessingResult(ProcessingOutcome.DONE, event.event_id, skipped_steps=skipped)
        result = self._finish(result, start)

        logger.debug(
            "Event processed",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "outcome": result.outcome.value,
                "skipped_steps": skipped,
                "processing_time_ms": result.duration_ms,
            },
        )
        return result

    async def _run_step(self, breaker, sink, func, event, skipped) -> None:
        try:
            await breaker.call_async(func)
        except CircuitOpenError as e:
            skipped.append(sink)
            record_sink_step_skipped(sink, "circuit_open")
            logger.warning(
                "Circuit open, skipping %s step",
                sink,
                extra={
                    "event_id": event.event_id,
                    "step": sink,
                    "circuit_name": e.circuit_name,
                    "retry_after": round(e.retry_after, 2),
                },
            )
        except DuplicateEventError:
            raise
        except SinkError as e:
            skipped.append(sink)
            record_sink_step_skipped(sink, "error")
            log_exception(
                logger,
                e,
                f"Sink failure, skipping {sink} step",
                level=logging.WARNING,
                include_traceback=False,
                event_id=event.event_id,
                step=sink,
                circuit_state=breaker.state.value,
            )

    def _finish(self, result: ProcessingResult, start: float) -> ProcessingResult:
        result.duration_ms = int((time.perf_counter() - start) * 1000)
        record_event_outcome(result.outcome.value)
        return result


__all__ = ["EventProcessor", "ProcessingOutcome", "ProcessingResult"]
