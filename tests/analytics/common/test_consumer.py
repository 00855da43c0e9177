"""
Tests for MessageConsumer.

The aiokafka client is replaced through _create_consumer so the tests can
drive batches and observe commits.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, call

import pytest
from aiokafka.errors import KafkaError
from aiokafka.structs import TopicPartition

from analytics.common.consumer import MessageConsumer
from analytics.common.health import HealthCheckServer
from config.config import KafkaSettings

TP0 = TopicPartition("user-events", 0)


def record(offset, value=b'{"eventType": "LOGIN"}', topic="user-events", partition=0, key=b"u1"):
    return SimpleNamespace(
        topic=topic,
        partition=partition,
        offset=offset,
        timestamp=1704067200000,
        key=key,
        value=value,
        headers=(),
    )


def make_kafka_client(consumer_ref, batches):
    client = Mock()
    client.start = AsyncMock()
    client.stop = AsyncMock()
    client.commit = AsyncMock()
    client.assignment.return_value = {TP0}
    client.highwater.return_value = 100

    async def getmany(**kwargs):
        if batches:
            return batches.pop(0)
        await consumer_ref[0].stop()
        return {}

    client.getmany = AsyncMock(side_effect=getmany)
    return client


@pytest.fixture
def handlers():
    return SimpleNamespace(message=AsyncMock(), error=AsyncMock())


def build_consumer(handlers, batches, health_server=None, settings=None):
    ref = []
    consumer = MessageConsumer(
        settings or KafkaSettings(),
        name="event-consumer-0",
        topics=["user-events", "system-events"],
        group_id="analytics-group",
        message_handler=handlers.message,
        error_handler=handlers.error,
        health_server=health_server,
    )
    ref.append(consumer)
    client = make_kafka_client(ref, batches)
    consumer._create_consumer = Mock(return_value=client)
    return consumer, client


# =============================================================================
# Configuration
# =============================================================================


def test_requires_topics(handlers):
    with pytest.raises(ValueError):
        MessageConsumer(KafkaSettings(), "c", [], "g", handlers.message, handlers.error)


def test_kafka_config_disables_auto_commit(handlers):
    consumer = MessageConsumer(
        KafkaSettings(max_poll_records=50), "c", ["user-events"], "g", handlers.message, handlers.error
    )

    cfg = consumer._build_kafka_config()

    assert cfg["enable_auto_commit"] is False
    assert cfg["group_id"] == "g"
    assert cfg["max_poll_records"] == 50
    assert cfg["auto_offset_reset"] == "earliest"
    assert "security_protocol" not in cfg


def test_kafka_config_includes_security(handlers):
    settings = KafkaSettings(
        security_protocol="SASL_PLAINTEXT", sasl_plain_username="u", sasl_plain_password="p"
    )
    consumer = MessageConsumer(settings, "c", ["user-events"], "g", handlers.message, handlers.error)

    cfg = consumer._build_kafka_config()

    assert cfg["security_protocol"] == "SASL_PLAINTEXT"
    assert cfg["sasl_plain_username"] == "u"


# =============================================================================
# Per-record processing and commits
# =============================================================================


async def test_processes_and_commits_each_record(handlers):
    consumer, client = build_consumer(handlers, [{TP0: [record(5), record(6)]}])

    await consumer.start()

    assert handlers.message.await_count == 2
    first_message = handlers.message.await_args_list[0].args[0]
    assert first_message.offset == 5
    assert first_message.key_str == "u1"
    assert client.commit.await_args_list == [call({TP0: 6}), call({TP0: 7})]
    assert consumer.records_processed == 2
    client.stop.assert_awaited_once()
    assert not consumer.is_running


async def test_handler_failure_quarantines_then_commits(handlers):
    error = ValueError("bad event")
    handlers.message.side_effect = [error, None]
    consumer, client = build_consumer(handlers, [{TP0: [record(0, b"not-json"), record(1)]}])

    await consumer.start()

    handlers.error.assert_awaited_once()
    message, raised = handlers.error.await_args.args
    assert message.value == b"not-json"
    assert raised is error
    assert client.commit.await_args_list == [call({TP0: 1}), call({TP0: 2})]


async def test_error_handler_failure_still_commits(handlers):
    handlers.message.side_effect = RuntimeError("processing failed")
    handlers.error.side_effect = RuntimeError("dlq down")
    consumer, client = build_consumer(handlers, [{TP0: [record(3)]}])

    await consumer.start()

    client.commit.assert_awaited_once_with({TP0: 4})


async def test_commit_failure_does_not_stop_consumption(handlers):
    consumer, client = build_consumer(handlers, [{TP0: [record(0), record(1)]}])
    client.commit.side_effect = [KafkaError("rebalance"), None]

    await consumer.start()

    assert handlers.message.await_count == 2
    assert client.commit.await_count == 2


async def test_commits_per_partition(handlers):
    tp1 = TopicPartition("system-events", 1)
    batch = {TP0: [record(10)], tp1: [record(3, topic="system-events", partition=1)]}
    consumer, client = build_consumer(handlers, [batch])

    await consumer.start()

    assert call({TP0: 11}) in client.commit.await_args_list
    assert call({tp1: 4}) in client.commit.await_args_list


async def test_stop_mid_batch_leaves_rest_uncommitted(handlers):
    consumer, client = build_consumer(handlers, [{TP0: [record(0), record(1), record(2)]}])

    async def stop_after_first(message):
        await consumer.stop()

    handlers.message.side_effect = stop_after_first

    await consumer.start()

    assert handlers.message.await_count == 1
    client.commit.assert_awaited_once_with({TP0: 1})


async def test_kafka_error_in_fetch_is_retried(handlers, monkeypatch):
    consumer, client = build_consumer(handlers, [{TP0: [record(0)]}])
    original = client.getmany.side_effect
    failures = [KafkaError("broker gone")]

    async def flaky(**kwargs):
        if failures:
            raise failures.pop()
        return await original(**kwargs)

    client.getmany.side_effect = flaky
    monkeypatch.setattr("analytics.common.consumer.asyncio.sleep", AsyncMock())

    await consumer.start()

    client.commit.assert_awaited_once_with({TP0: 1})


async def test_duplicate_start_ignored(handlers):
    consumer, client = build_consumer(handlers, [])
    consumer._running = True

    await consumer.start()

    consumer._create_consumer.assert_not_called()


# =============================================================================
# Health reporting
# =============================================================================


async def test_reports_connection_to_health_server(handlers):
    health = HealthCheckServer(port=None, worker_name="event-consumer")
    consumer, client = build_consumer(handlers, [], health_server=health)
    assert not health.is_ready

    seen = []

    async def getmany(**kwargs):
        seen.append(health.is_ready)
        await consumer.stop()
        return {}

    client.getmany.side_effect = getmany

    await consumer.start()

    assert seen == [True]
    # Closing clears readiness
    assert not health.is_ready


async def test_idle_consumer_without_partitions_is_ready(handlers):
    health = HealthCheckServer(port=None, worker_name="event-consumer")
    consumer, client = build_consumer(handlers, [], health_server=health)
    # More consumers than partitions: this one is never assigned any
    client.assignment.return_value = set()

    task = asyncio.create_task(consumer.start())
    await asyncio.sleep(0.1)

    assert health.is_ready
    client.getmany.assert_not_awaited()

    await consumer.stop()
    await task
    assert not health.is_ready
