"""Construction of the sink adapters and their circuit breakers from config."""

import logging
from dataclasses import dataclass

from analytics.common.metrics import PrometheusBreakerMetrics
from analytics.sinks.counters import CounterStore
from analytics.sinks.durable import DeadLetterStore, DurableEventStore
from analytics.sinks.search import SearchIndex
from config.config import AnalyticsConfig
from core.errors.classifiers import SinkErrorClassifier
from core.resilience import CircuitBreaker, CircuitBreakerConfig, get_circuit_breaker

logger = logging.getLogger(__name__)

BREAKER_SINKS = ("durable", "search")


@dataclass
class Sinks:
    durable: DurableEventStore
    dead_letter: DeadLetterStore
    search: SearchIndex
    counters: CounterStore

    async def close(self) -> None:
        # Dead-letter store shares the durable engine
        for name, closer in (
            ("search", self.search.close),
            ("counters", self.counters.close),
            ("durable", self.durable.close),
        ):
            try:
                await closer()
            except Exception as e:
                logger.warning(
                    "Error closing sink",
                    extra={"sink": name, "error_message": str(e)},
                )


def build_sinks(config: AnalyticsConfig) -> Sinks:
    timeout = config.processing.sink_timeout_seconds
    durable = DurableEventStore.from_settings(config.postgres, timeout_seconds=timeout)
    return Sinks(
        durable=durable,
        dead_letter=DeadLetterStore(durable.engine, timeout_seconds=timeout),
        search=SearchIndex.from_settings(config.elasticsearch, timeout_seconds=timeout),
        counters=CounterStore.from_settings(config.redis, timeout_seconds=timeout),
    )


def build_breaker(config: AnalyticsConfig, sink: str) -> CircuitBreaker:
    """Registry breaker for a sink, configured from circuit_breakers.<sink>."""
    return get_circuit_breaker(
        sink,
        CircuitBreakerConfig.from_dict(config.get_circuit_breaker_settings(sink)),
        metrics_collector=PrometheusBreakerMetrics(),
        error_classifier=SinkErrorClassifier(),
    )


__all__ = ["BREAKER_SINKS", "Sinks", "build_breaker", "build_sinks"]
