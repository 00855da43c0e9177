"""Event publisher for the ingestion API."""

import asyncio
import logging
from typing import Any

from aiokafka import AIOKafkaProducer

from analytics.common.kafka_config import build_kafka_security_config
from analytics.common.metrics import (
    record_message_produced,
    record_producer_error,
    update_connection_status,
)
from analytics.schemas.events import AnalyticsEvent, resolve_topic
from config.config import KafkaSettings

logger = logging.getLogger(__name__)


class ProducerNotStartedError(RuntimeError):
    """Publish attempted before start() or after stop()."""


class EventProducer:
    """Publishes events to user-events / system-events without waiting for acks.

    send() returns once the record is handed to the client's buffer; broker
    failures are reported through the delivery callback (log + metric) and
    never reach the caller.
    """

    def __init__(self, config: KafkaSettings, client_id: str = "analytics-ingest"):
        self.config = config
        self.client_id = client_id
        self._producer: AIOKafkaProducer | None = None
        self._started = False

    def _resolve_acks(self) -> Any:
        acks_value = self.config.acks
        if isinstance(acks_value, str) and acks_value.isdigit():
            acks_value = int(acks_value)
        return acks_value

    def _build_kafka_config(self) -> dict[str, Any]:
        kafka_config = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "client_id": self.client_id,
            "value_serializer": lambda v: v,
            "request_timeout_ms": self.config.request_timeout_ms,
            "acks": self._resolve_acks(),
            "linger_ms": self.config.linger_ms,
        }
        if self.config.compression_type and self.config.compression_type != "none":
            kafka_config["compression_type"] = self.config.compression_type
        kafka_config.update(build_kafka_security_config(self.config))
        return kafka_config

    async def start(self) -> None:
        if self._started:
            logger.warning("Producer already started, ignoring duplicate start call")
            return

        logger.info(
            "Starting event producer",
            extra={"topic": f"{self.config.user_events_topic},{self.config.system_events_topic}"},
        )
        self._producer = AIOKafkaProducer(**self._build_kafka_config())
        await self._producer.start()
        self._started = True
        update_connection_status("producer", connected=True)

    async def stop(self) -> None:
        if self._producer is None:
            return

        logger.info("Stopping event producer")
        try:
            if self._started:
                await self._producer.flush()
            await self._producer.stop()
        except Exception as e:
            # Shutdown path: report and carry on so the original exception is not masked
            logger.error(
                "Error stopping event producer",
                extra={"error_message": str(e)},
                exc_info=True,
            )
        finally:
            update_connection_status("producer", connected=False)
            self._producer = None
            self._started = False

    def topic_for(self, event: AnalyticsEvent) -> str:
        return resolve_topic(
            event.event_type, self.config.user_events_topic, self.config.system_events_topic
        )

    async def send(self, event: AnalyticsEvent) -> str:
        """Dispatch one event, keyed by userId (else eventId). Returns the topic."""
        if not self.is_started:
            raise ProducerNotStartedError("Producer not started. Call start() first.")

        topic = self.topic_for(event)
        key = event.partition_key
        value = event.to_json_bytes()

        try:
            future = await self._producer.send(
                topic,
                key=key.encode("utf-8") if key is not None else None,
                value=value,
            )
        except Exception as e:
            record_producer_error(topic, type(e).__name__)
            logger.error(
                "Failed to enqueue event",
                extra={"topic": topic, "event_id": event.event_id, "error_message": str(e)},
            )
            raise

        future.add_done_callback(
            lambda fut: self._on_delivery(fut, topic, event.event_id)
        )
        return topic

    async def send_many(self, events: list[AnalyticsEvent]) -> int:
        for event in events:
            await self.send(event)
        return len(events)

    @staticmethod
    def _on_delivery(future: asyncio.Future, topic: str, event_id: str | None) -> None:
        if future.cancelled():
            record_message_produced(topic, success=False)
            return
        error = future.exception()
        if error is None:
            record_message_produced(topic, success=True)
            return
        record_message_produced(topic, success=False)
        record_producer_error(topic, type(error).__name__)
        logger.error(
            "Event delivery failed",
            extra={"topic": topic, "event_id": event_id, "error_message": str(error)},
        )

    @property
    def is_started(self) -> bool:
        return self._started and self._producer is not None


__all__ = ["EventProducer", "ProducerNotStartedError"]
