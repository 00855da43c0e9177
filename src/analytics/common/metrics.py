"""
Prometheus metrics for pipeline monitoring.

Focused on essential metrics:
- Message production and consumption counts
- Consumer lag, offsets and partition assignment
- Event processing outcomes and skipped sink steps
- Dead-letter quarantine and quarantine failures
- Circuit breaker state

Metrics register on the default prometheus_client registry, which the CLI
serves with start_http_server.
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Transport
# =============================================================================

messages_produced_counter = Counter(
    "analytics_messages_produced_total",
    "Total number of events published to topics",
    labelnames=["topic"],
)

producer_errors_counter = Counter(
    "analytics_producer_errors_total",
    "Total producer errors by error type",
    labelnames=["topic", "error_type"],
)

messages_consumed_counter = Counter(
    "analytics_messages_consumed_total",
    "Total number of records consumed from topics",
    labelnames=["topic", "consumer_group", "outcome"],
)

consumer_lag_gauge = Gauge(
    "analytics_consumer_lag",
    "Current consumer lag (messages behind latest offset)",
    labelnames=["topic", "partition", "consumer_group"],
)

consumer_offset_gauge = Gauge(
    "analytics_consumer_offset",
    "Last committed consumer offset",
    labelnames=["topic", "partition", "consumer_group"],
)

consumer_assigned_partitions_gauge = Gauge(
    "analytics_consumer_assigned_partitions",
    "Number of partitions assigned to consumer",
    labelnames=["consumer_group"],
)

kafka_connection_status_gauge = Gauge(
    "analytics_connection_status",
    "Kafka connection status (1=connected, 0=disconnected)",
    labelnames=["component"],
)

message_processing_duration_seconds = Histogram(
    "analytics_message_processing_duration_seconds",
    "Time spent processing individual records",
    labelnames=["topic", "consumer_group"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# =============================================================================
# Processing
# =============================================================================

events_processed_counter = Counter(
    "analytics_events_processed_total",
    "Events that reached a terminal processing state",
    labelnames=["outcome"],
)

sink_steps_skipped_counter = Counter(
    "analytics_sink_steps_skipped_total",
    "Fan-out steps skipped because the sink failed or its circuit was open",
    labelnames=["sink", "reason"],
)

quarantined_records_counter = Counter(
    "analytics_dlq_records_total",
    "Records written to the dead-letter store",
    labelnames=["reason"],
)

dlq_save_failures_counter = Counter(
    "analytics_dlq_save_failures_total",
    "Dead-letter writes that failed and were dropped",
)

# =============================================================================
# Circuit breakers
# =============================================================================

circuit_breaker_state_gauge = Gauge(
    "analytics_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    labelnames=["circuit_name"],
)

circuit_breaker_failures_gauge = Gauge(
    "analytics_circuit_breaker_failures",
    "Consecutive counted failures in the closed state",
    labelnames=["circuit_name"],
)

circuit_breaker_transitions_counter = Counter(
    "analytics_circuit_breaker_state_transitions_total",
    "Circuit breaker state transitions",
    labelnames=["circuit_name", "from_state", "to_state"],
)

circuit_breaker_calls_counter = Counter(
    "analytics_circuit_breaker_calls_total",
    "Calls through a circuit breaker by result",
    labelnames=["circuit_name", "result"],
)


class PrometheusBreakerMetrics:
    """MetricsCollector implementation handed to the sink circuit breakers."""

    _COUNTERS = {
        "circuit_breaker_state_transitions": circuit_breaker_transitions_counter,
        "circuit_breaker_calls_total": circuit_breaker_calls_counter,
    }
    _GAUGES = {
        "circuit_breaker_state": circuit_breaker_state_gauge,
        "circuit_breaker_failures": circuit_breaker_failures_gauge,
    }

    def increment_counter(self, name: str, labels: dict | None = None) -> None:
        counter = self._COUNTERS.get(name)
        if counter is not None:
            counter.labels(**(labels or {})).inc()

    def set_gauge(self, name: str, value: float, labels: dict | None = None) -> None:
        gauge = self._GAUGES.get(name)
        if gauge is not None:
            gauge.labels(**(labels or {})).set(value)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_message_produced(topic: str, success: bool = True) -> None:
    messages_produced_counter.labels(topic=topic).inc()
    if not success:
        producer_errors_counter.labels(topic=topic, error_type="send_failed").inc()


def record_producer_error(topic: str, error_type: str) -> None:
    producer_errors_counter.labels(topic=topic, error_type=error_type).inc()


def record_message_consumed(topic: str, consumer_group: str, outcome: str) -> None:
    messages_consumed_counter.labels(
        topic=topic, consumer_group=consumer_group, outcome=outcome
    ).inc()


def update_consumer_lag(topic: str, partition: int, consumer_group: str, lag: int) -> None:
    consumer_lag_gauge.labels(
        topic=topic, partition=str(partition), consumer_group=consumer_group
    ).set(lag)


def update_consumer_offset(topic: str, partition: int, consumer_group: str, offset: int) -> None:
    consumer_offset_gauge.labels(
        topic=topic, partition=str(partition), consumer_group=consumer_group
    ).set(offset)


def update_connection_status(component: str, connected: bool) -> None:
    kafka_connection_status_gauge.labels(component=component).set(1 if connected else 0)


def update_assigned_partitions(consumer_group: str, count: int) -> None:
    consumer_assigned_partitions_gauge.labels(consumer_group=consumer_group).set(count)


def record_event_outcome(outcome: str) -> None:
    events_processed_counter.labels(outcome=outcome).inc()


def record_sink_step_skipped(sink: str, reason: str) -> None:
    sink_steps_skipped_counter.labels(sink=sink, reason=reason).inc()


def record_quarantined(reason: str) -> None:
    quarantined_records_counter.labels(reason=reason).inc()


def record_dlq_save_failure() -> None:
    dlq_save_failures_counter.inc()


__all__ = [
    "PrometheusBreakerMetrics",
    "message_processing_duration_seconds",
    "dlq_save_failures_counter",
    "events_processed_counter",
    "sink_steps_skipped_counter",
    "record_message_produced",
    "record_producer_error",
    "record_message_consumed",
    "update_consumer_lag",
    "update_consumer_offset",
    "update_connection_status",
    "update_assigned_partitions",
    "record_event_outcome",
    "record_sink_step_skipped",
    "record_quarantined",
    "record_dlq_save_failure",
]
