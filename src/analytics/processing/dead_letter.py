"""Dead-letter quarantine for records that could not be processed."""

import logging

from analytics.common.metrics import record_dlq_save_failure, record_quarantined
from analytics.schemas.events import extract_event_id
from analytics.sinks.durable import DeadLetterStore
from core.errors.exceptions import SinkError

logger = logging.getLogger(__name__)

# Error message recorded for records read back from the Kafka DLQ topic
KAFKA_DLQ_MESSAGE = "Received from Kafka DLQ topic"

_ERROR_MESSAGE_LIMIT = 4000


class DeadLetterQuarantine:
    """Appends raw record values to the dead-letter table.

    Never raises on a storage failure: a quarantine that cannot be written is
    logged, counted in analytics_dlq_save_failures_total, and dropped so the
    consumer can still acknowledge the record.
    """

    def __init__(self, store: DeadLetterStore):
        self.store = store

    async def quarantine(
        self,
        raw_payload: str | None,
        error_message: str,
        reason: str = "processing_error",
    ) -> bool:
        """Returns True when the dead-letter row was written."""
        event_id = extract_event_id(raw_payload)
        error_message = (error_message or "")[:_ERROR_MESSAGE_LIMIT]

        try:
            await self.store.save(raw_payload, error_message, event_id=event_id)
        except SinkError as e:
            record_dlq_save_failure()
            logger.error(
                "Failed to save dead-letter record, dropping it",
                extra={
                    "event_id": event_id,
                    "outcome": "dlq_save_failed",
                    "error_message": str(e)[:500],
                    "error_type": type(e).__name__,
                },
            )
            return False

        record_quarantined(reason)
        logger.warning(
            "Record quarantined",
            extra={"event_id": event_id, "outcome": reason, "error_message": error_message[:500]},
        )
        return True


__all__ = ["DeadLetterQuarantine", "KAFKA_DLQ_MESSAGE"]
