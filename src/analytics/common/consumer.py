"""Per-record-commit Kafka consumer with quarantine on failure."""

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from aiokafka.structs import ConsumerRecord, TopicPartition

from analytics.common.health import HealthCheckServer
from analytics.common.kafka_config import build_kafka_security_config
from analytics.common.metrics import (
    message_processing_duration_seconds,
    record_message_consumed,
    update_assigned_partitions,
    update_connection_status,
    update_consumer_lag,
    update_consumer_offset,
)
from analytics.common.types import PipelineMessage, from_consumer_record
from config.config import KafkaSettings
from core.logging import MessageLogContext, log_exception, set_log_context
from core.utils import generate_worker_id

logger = logging.getLogger(__name__)

MessageHandler = Callable[[PipelineMessage], Awaitable[None]]
ErrorHandler = Callable[[PipelineMessage, Exception], Awaitable[None]]


class MessageConsumer:
    """Async consumer that processes records one at a time and commits each.

    Auto-commit is disabled. After the handler finishes with a record, or the
    error handler has quarantined it, the consumer commits that record's
    offset + 1 for its partition only. A record is therefore acknowledged
    exactly when its pipeline has terminated, and a crash before that point
    leads to redelivery.

    The error handler must not raise; if it does, the record is still
    acknowledged so a poison record cannot stall its partition.
    """

    def __init__(
        self,
        config: KafkaSettings,
        name: str,
        topics: list[str],
        group_id: str,
        message_handler: MessageHandler,
        error_handler: ErrorHandler,
        health_server: HealthCheckServer | None = None,
    ):
        if not topics:
            raise ValueError("At least one topic must be specified")

        self.config = config
        self.name = name
        self.topics = topics
        self.group_id = group_id
        self.message_handler = message_handler
        self.error_handler = error_handler
        self.health_server = health_server
        self.worker_id = generate_worker_id(name)

        self._consumer: AIOKafkaConsumer | None = None
        self._running = False
        self._records_processed = 0

        if health_server is not None:
            health_server.register_consumer(name)

        logger.info(
            "Initialized message consumer",
            extra={
                "worker_id": self.worker_id,
                "topic": ",".join(topics),
                "consumer_group": group_id,
            },
        )

    def _build_kafka_config(self) -> dict:
        cfg = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "group_id": self.group_id,
            "client_id": self.name,
            "request_timeout_ms": self.config.request_timeout_ms,
            "enable_auto_commit": False,
            "auto_offset_reset": self.config.auto_offset_reset,
            "max_poll_records": self.config.max_poll_records,
            "fetch_max_wait_ms": self.config.fetch_max_wait_ms,
            "max_poll_interval_ms": self.config.max_poll_interval_ms,
            "session_timeout_ms": self.config.session_timeout_ms,
            "heartbeat_interval_ms": self.config.heartbeat_interval_ms,
        }
        cfg.update(build_kafka_security_config(self.config))
        return cfg

    def _create_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(*self.topics, **self._build_kafka_config())

    async def start(self) -> None:
        """Connect and run the consume loop until stop() or cancellation."""
        if self._running:
            logger.warning("Consumer already running, ignoring duplicate start call")
            return

        set_log_context(stage=self.name, worker_id=self.worker_id)
        logger.info(
            "Starting message consumer",
            extra={"topic": ",".join(self.topics), "consumer_group": self.group_id},
        )

        self._consumer = self._create_consumer()
        await self._consumer.start()
        self._running = True
        update_connection_status(self.name, connected=True)
        if self.health_server is not None:
            self.health_server.set_consumer_connected(self.name, True)

        try:
            await self._consume_loop()
        except asyncio.CancelledError:
            logger.info("Consumer loop cancelled, shutting down")
            raise
        finally:
            await self._close()

    async def stop(self) -> None:
        """Stop polling; the in-flight record is allowed to finish."""
        if self._running:
            logger.info("Stopping message consumer", extra={"consumer_group": self.group_id})
        self._running = False

    async def _close(self) -> None:
        self._running = False
        consumer, self._consumer = self._consumer, None
        try:
            if consumer is not None:
                await consumer.stop()
            logger.info(
                "Message consumer stopped",
                extra={"consumer_group": self.group_id, "records_processed": self._records_processed},
            )
        finally:
            update_connection_status(self.name, connected=False)
            update_assigned_partitions(self.group_id, 0)
            if self.health_server is not None:
                self.health_server.set_consumer_connected(self.name, False)

    async def _wait_for_assignment(self) -> bool:
        """Wait for partition assignment, logging once. Returns True when assigned."""
        logged_waiting = False
        while self._running and self._consumer:
            assignment = self._consumer.assignment()
            if assignment:
                logger.info(
                    "Partition assignment received, starting message consumption",
                    extra={
                        "consumer_group": self.group_id,
                        "records_total": len(assignment),
                    },
                )
                self._report_assignment(assignment)
                return True
            if not logged_waiting:
                logger.info(
                    "Waiting for partition assignment (consumer group rebalance in progress)",
                    extra={"consumer_group": self.group_id},
                )
                logged_waiting = True
            await asyncio.sleep(0.5)
        return False

    def _report_assignment(self, assignment) -> None:
        update_assigned_partitions(self.group_id, len(assignment))

    async def _fetch_and_process_batch(self) -> bool:
        """Fetch up to max_poll_records and process them sequentially.

        Returns False if the consumer was stopped mid-batch.
        """
        data = await self._consumer.getmany(
            timeout_ms=1000, max_records=self.config.max_poll_records
        )
        self._report_assignment(self._consumer.assignment())

        for record in itertools.chain.from_iterable(data.values()):
            if not self._running:
                return False
            await self._process_record(record)
        return True

    async def _consume_loop(self) -> None:
        if not await self._wait_for_assignment():
            return

        while self._running and self._consumer:
            try:
                if not await self._fetch_and_process_batch():
                    return
            except asyncio.CancelledError:
                raise
            except KafkaError as e:
                # Offsets stay where they were; aiokafka reconnects and rebalances
                log_exception(
                    logger,
                    e,
                    "Kafka error in consumption loop",
                    level=logging.WARNING,
                    include_traceback=False,
                    consumer_group=self.group_id,
                )
                await asyncio.sleep(1)

    async def _process_record(self, record: ConsumerRecord) -> None:
        message = from_consumer_record(record)
        with MessageLogContext(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=message.key_str,
            consumer_group=self.group_id,
        ):
            start_time = time.perf_counter()
            outcome = "processed"

            try:
                await self.message_handler(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome = "quarantined"
                await self._handle_error(message, e)

            await self._commit_record(record)
            self._records_processed += 1

            message_processing_duration_seconds.labels(
                topic=record.topic, consumer_group=self.group_id
            ).observe(time.perf_counter() - start_time)
            record_message_consumed(record.topic, self.group_id, outcome)

    async def _handle_error(self, message: PipelineMessage, error: Exception) -> None:
        log_exception(
            logger,
            error,
            "Record processing failed, quarantining",
            level=logging.WARNING,
            include_traceback=False,
            consumer_group=self.group_id,
        )
        try:
            await self.error_handler(message, error)
        except Exception:
            logger.error(
                "Quarantine handler raised, acknowledging record anyway",
                extra={"consumer_group": self.group_id},
                exc_info=True,
            )

    async def _commit_record(self, record: ConsumerRecord) -> None:
        """Commit offset + 1 for this record's partition only."""
        tp = TopicPartition(record.topic, record.partition)
        try:
            await self._consumer.commit({tp: record.offset + 1})
        except KafkaError as e:
            # Typically a rebalance; the record will be redelivered to the new owner
            log_exception(
                logger,
                e,
                "Offset commit failed, record may be redelivered",
                level=logging.WARNING,
                include_traceback=False,
                consumer_group=self.group_id,
            )
            return

        self._update_partition_metrics(record, tp)

    def _update_partition_metrics(self, record: ConsumerRecord, tp: TopicPartition) -> None:
        update_consumer_offset(record.topic, record.partition, self.group_id, record.offset + 1)
        highwater = self._consumer.highwater(tp)
        if highwater is not None:
            update_consumer_lag(
                record.topic, record.partition, self.group_id, highwater - (record.offset + 1)
            )

    @property
    def is_running(self) -> bool:
        return self._running and self._consumer is not None

    @property
    def records_processed(self) -> int:
        return self._records_processed


__all__ = ["ErrorHandler", "MessageConsumer", "MessageHandler"]
