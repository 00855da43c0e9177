"""Per-event processing: idempotency gate, sink fan-out, counters and quarantine."""

from analytics.processing.processor import EventProcessor, ProcessingOutcome, ProcessingResult

__all__ = ["EventProcessor", "ProcessingOutcome", "ProcessingResult"]
