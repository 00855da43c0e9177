"""
Event consumer worker.

Runs N consumers in the analytics group over user-events and system-events
(one per partition slot, each processing its records sequentially) plus one
dead-letter monitor over dead-letter-events. Decoded events go through the
EventProcessor; anything that fails decoding or escapes the processor is
quarantined and acknowledged.
"""

import asyncio
import logging

from analytics.common.consumer import MessageConsumer
from analytics.common.health import HealthCheckServer
from analytics.common.types import PipelineMessage
from analytics.processing.counters import EventCounters
from analytics.processing.dead_letter import KAFKA_DLQ_MESSAGE, DeadLetterQuarantine
from analytics.processing.idempotency import IdempotencyGate
from analytics.processing.processor import EventProcessor
from analytics.schemas.events import decode_event
from analytics.sinks.factory import Sinks, build_breaker
from config.config import AnalyticsConfig
from core.errors.exceptions import EventDecodeError, EventValidationError

logger = logging.getLogger(__name__)


def build_processor(config: AnalyticsConfig, sinks: Sinks) -> EventProcessor:
    durable_breaker = build_breaker(config, "durable")
    search_breaker = build_breaker(config, "search")
    counters = EventCounters(
        sinks.counters,
        rate_bucket_ttl_seconds=config.processing.rate_bucket_ttl_seconds,
        idempotency_ttl_seconds=config.processing.idempotency_ttl_seconds,
    )
    gate = IdempotencyGate(counters, sinks.durable, durable_breaker)
    return EventProcessor(
        gate=gate,
        durable_store=sinks.durable,
        search_index=sinks.search,
        counters=counters,
        durable_breaker=durable_breaker,
        search_breaker=search_breaker,
    )


def quarantine_reason(error: Exception) -> str:
    if isinstance(error, EventDecodeError):
        return "decode_error"
    if isinstance(error, EventValidationError):
        return "validation_error"
    return "processing_error"


class EventConsumerWorker:
    """Owns the consumer instances and their shutdown."""

    WORKER_NAME = "event-consumer"

    def __init__(
        self,
        config: AnalyticsConfig,
        processor: EventProcessor,
        quarantine: DeadLetterQuarantine,
        health_server: HealthCheckServer | None = None,
        concurrency: int | None = None,
    ):
        self.config = config
        self.processor = processor
        self.quarantine = quarantine
        self.health_server = health_server
        self.concurrency = concurrency or config.kafka.concurrency
        self.consumers = self._create_consumers()
        self._tasks: list[asyncio.Task] = []

    def _create_consumers(self) -> list[MessageConsumer]:
        kafka = self.config.kafka
        consumers = [
            MessageConsumer(
                kafka,
                name=f"{self.WORKER_NAME}-{i}",
                topics=kafka.primary_topics,
                group_id=kafka.consumer_group,
                message_handler=self.handle_event,
                error_handler=self.handle_failure,
                health_server=self.health_server,
            )
            for i in range(self.concurrency)
        ]
        consumers.append(
            MessageConsumer(
                kafka,
                name="dlq-monitor",
                topics=[kafka.dead_letter_topic],
                group_id=kafka.dlq_consumer_group,
                message_handler=self.handle_dead_letter,
                error_handler=self.handle_failure,
                health_server=self.health_server,
            )
        )
        return consumers

    async def handle_event(self, message: PipelineMessage) -> None:
        event = decode_event(message.value)
        await self.processor.process(event)

    async def handle_dead_letter(self, message: PipelineMessage) -> None:
        logger.warning(
            "Received record from Kafka DLQ topic",
            extra={"topic": message.topic, "message_offset": message.offset},
        )
        await self.quarantine.quarantine(
            message.value_text(), KAFKA_DLQ_MESSAGE, reason="kafka_dlq"
        )

    async def handle_failure(self, message: PipelineMessage, error: Exception) -> None:
        await self.quarantine.quarantine(
            message.value_text() if message.value is not None else None,
            str(error),
            reason=quarantine_reason(error),
        )

    def _on_consumer_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(
            "Consumer %s terminated with error",
            task.get_name(),
            exc_info=error,
        )
        if self.health_server is not None:
            self.health_server.set_error(f"{task.get_name()}: {error}")

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Start all consumers and block until shutdown_event is set.

        On shutdown, polling stops, in-flight records get up to
        shutdown_grace_seconds to finish, then remaining tasks are cancelled.
        Uncommitted records are redelivered on the next start.
        """
        for consumer in self.consumers:
            task = asyncio.create_task(consumer.start(), name=consumer.name)
            task.add_done_callback(self._on_consumer_done)
            self._tasks.append(task)

        await shutdown_event.wait()
        await self.shutdown()

    async def shutdown(self) -> None:
        grace = self.config.processing.shutdown_grace_seconds
        logger.info("Shutting down consumers", extra={"timeout_seconds": grace})

        for consumer in self.consumers:
            await consumer.stop()

        pending = [t for t in self._tasks if not t.done()]
        if pending:
            _, pending = await asyncio.wait(pending, timeout=grace)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Cancelled consumers still busy after grace period",
                extra={"records_total": len(pending)},
            )
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


__all__ = ["EventConsumerWorker", "build_processor", "quarantine_reason"]
