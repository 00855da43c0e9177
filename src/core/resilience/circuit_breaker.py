"""
Circuit breaker guarding one backing store.

The event processor runs every durable insert and search upsert through the
breaker for that sink. A degraded sink then fast-fails with CircuitOpenError
and the processor skips the step instead of holding a consumer worker.

Every guarded call yields one sample about the sink:
- healthy: the call returned, or failed on the data itself (a PERMANENT
  error such as a duplicate key or a rejected document); the sink answered
- unhealthy: the call failed with a counted category (TRANSIENT, AUTH,
  UNKNOWN by default)
- none: the call was cancelled before the sink answered

States:
- CLOSED: calls pass; failure_threshold consecutive unhealthy samples open it
- OPEN: calls rejected until timeout_seconds have passed since opening
- HALF_OPEN: up to half_open_max_calls trials in flight; success_threshold
  healthy samples close it, one unhealthy sample reopens it

A trial slot is returned when its call finishes, whatever the outcome.

Usage:
    breaker = get_circuit_breaker("search", CircuitBreakerConfig(timeout_seconds=60.0))
    try:
        await breaker.call_async(lambda: index.upsert(doc))
    except CircuitOpenError:
        ...  # step skipped
"""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol, TypeVar

from core.errors.exceptions import CircuitOpenError
from core.types import ErrorCategory, ErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

COUNTED_CATEGORIES = (
    ErrorCategory.TRANSIENT,
    ErrorCategory.AUTH,
    ErrorCategory.UNKNOWN,
    ErrorCategory.CIRCUIT_OPEN,
)

# Gauge encoding for circuit_breaker_state
STATE_GAUGE = {"closed": 0, "half_open": 1, "open": 2}


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class MetricsCollector(Protocol):
    """Sink for breaker metrics (see PrometheusBreakerMetrics)."""

    def increment_counter(self, name: str, labels: dict | None = None) -> None: ...
    def set_gauge(
        self, name: str, value: float, labels: dict | None = None
    ) -> None: ...


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3
    # Overrides COUNTED_CATEGORIES when set
    failure_categories: tuple | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "CircuitBreakerConfig":
        """Build from a config mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class CircuitStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    last_state_change_time: float | None = None
    current_state: str = "closed"


def category_of(exc: BaseException) -> ErrorCategory:
    """Category carried by a PipelineError, UNKNOWN for anything else."""
    category = getattr(exc, "category", None)
    return category if isinstance(category, ErrorCategory) else ErrorCategory.UNKNOWN


class CircuitBreaker:
    """Breaker for one sink. Safe to share across the consumer workers."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_state_change: Callable[[CircuitState, CircuitState], None] | None = None,
        metrics_collector: MetricsCollector | None = None,
        error_classifier: ErrorClassifier | None = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.on_state_change = on_state_change
        self._metrics = metrics_collector
        self._classifier = error_classifier

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None

        # Trial bookkeeping for the current HALF_OPEN period
        self._half_open_period = 0
        self._trials_in_flight = 0
        self._trial_successes = 0

        self._stats = CircuitStats()
        self._lock = threading.RLock()

        self._publish_state()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitStats:
        """Snapshot of the call statistics."""
        with self._lock:
            self._maybe_half_open()
            return replace(self._stats, current_state=self._state.value)

    async def call_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run func through the breaker.

        Raises CircuitOpenError without calling func when no call is
        admitted. Exceptions from func are sampled and re-raised.
        """
        trial = self._admit()
        try:
            result = await func()
        except Exception as e:
            with self._lock:
                self._sample_error(e)
            raise
        else:
            with self._lock:
                self._sample_healthy("success")
            return result
        finally:
            if trial is not None:
                self._release_trial(trial)

    def force_open(self) -> None:
        """Open the circuit now (operator action, tests)."""
        with self._lock:
            self._open()

    def reset(self) -> None:
        with self._lock:
            self._move_to(CircuitState.CLOSED)
            self._consecutive_failures = 0
            self._opened_at = None
            self._publish_state()
            logger.info("Circuit manually reset: circuit_name=%s", self.name)

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def _admit(self) -> int | None:
        """Admit one call or raise CircuitOpenError.

        Returns the HALF_OPEN period the call is a trial for, None outside HALF_OPEN.
        """
        with self._lock:
            self._stats.total_calls += 1
            self._maybe_half_open()

            if self._state == CircuitState.CLOSED:
                return None

            if (
                self._state == CircuitState.HALF_OPEN
                and self._trials_in_flight < self.config.half_open_max_calls
            ):
                self._trials_in_flight += 1
                return self._half_open_period

            self._stats.rejected_calls += 1
            self._count_call("rejected")
            raise CircuitOpenError(self.name, self._retry_after())

    def _release_trial(self, period: int) -> None:
        with self._lock:
            # A trial from an earlier HALF_OPEN period holds no current slot
            if period == self._half_open_period and self._trials_in_flight > 0:
                self._trials_in_flight -= 1

    def _retry_after(self) -> float:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.config.timeout_seconds - (time.monotonic() - self._opened_at))

    # -------------------------------------------------------------------------
    # Samples
    # -------------------------------------------------------------------------

    def _counts_against_sink(self, exc: Exception) -> bool:
        if self._classifier is not None:
            category = self._classifier.classify_error(exc)
        else:
            category = category_of(exc)
        return category in (self.config.failure_categories or COUNTED_CATEGORIES)

    def _sample_error(self, exc: Exception) -> None:
        self._stats.failed_calls += 1
        self._stats.last_failure_time = time.time()

        if not self._counts_against_sink(exc):
            logger.debug(
                "Error not counted against sink: circuit_name=%s, error_type=%s",
                self.name,
                type(exc).__name__,
            )
            self._sample_healthy("ignored")
            return

        self._count_call("failure")
        if self._state == CircuitState.HALF_OPEN:
            logger.info(
                "Trial failed, reopening circuit: circuit_name=%s, error_type=%s",
                self.name,
                type(exc).__name__,
            )
            self._open()
            return

        if self._state == CircuitState.CLOSED:
            self._consecutive_failures += 1
            logger.debug(
                "Sink failure recorded: circuit_name=%s, error_type=%s, "
                "failure_count=%d, failure_threshold=%d",
                self.name,
                type(exc).__name__,
                self._consecutive_failures,
                self.config.failure_threshold,
            )
            if self._consecutive_failures >= self.config.failure_threshold:
                self._open()
                return
        self._publish_state()

    def _sample_healthy(self, result: str) -> None:
        if result == "success":
            self._stats.successful_calls += 1
            self._stats.last_success_time = time.time()
        self._count_call(result)

        if self._state == CircuitState.HALF_OPEN:
            self._trial_successes += 1
            if self._trial_successes >= self.config.success_threshold:
                self._move_to(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._consecutive_failures = 0
        self._publish_state()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _maybe_half_open(self) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if time.monotonic() - self._opened_at >= self.config.timeout_seconds:
            self._move_to(CircuitState.HALF_OPEN)

    def _open(self) -> None:
        self._opened_at = time.monotonic()
        self._move_to(CircuitState.OPEN)
        self._publish_state()

    def _move_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change_time = time.time()
        self._stats.current_state = new_state.value

        if new_state == CircuitState.HALF_OPEN:
            self._half_open_period += 1
            self._trials_in_flight = 0
            self._trial_successes = 0
            logger.info("Circuit half-open: circuit_name=%s", self.name)
        elif new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            logger.info("Circuit closed: circuit_name=%s", self.name)
        else:
            logger.warning(
                "Circuit open: circuit_name=%s, timeout_seconds=%.2f",
                self.name,
                self.config.timeout_seconds,
            )

        if self._metrics:
            self._metrics.increment_counter(
                "circuit_breaker_state_transitions",
                labels={
                    "circuit_name": self.name,
                    "from_state": old_state.value,
                    "to_state": new_state.value,
                },
            )

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.warning(
                    "Error in circuit state change callback: circuit_name=%s, error=%s",
                    self.name,
                    str(e),
                )

        self._publish_state()

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def _count_call(self, result: str) -> None:
        if self._metrics:
            self._metrics.increment_counter(
                "circuit_breaker_calls_total",
                labels={"circuit_name": self.name, "result": result},
            )

    def _publish_state(self) -> None:
        if not self._metrics:
            return
        labels = {"circuit_name": self.name}
        self._metrics.set_gauge("circuit_breaker_state", STATE_GAUGE[self._state.value], labels=labels)
        self._metrics.set_gauge("circuit_breaker_failures", self._consecutive_failures, labels=labels)


# =============================================================================
# Named registry, one breaker per sink per process
# =============================================================================

_breakers: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(
    name: str,
    config: CircuitBreakerConfig | None = None,
    metrics_collector: MetricsCollector | None = None,
    error_classifier: ErrorClassifier | None = None,
) -> CircuitBreaker:
    """Return the breaker registered under name, creating it on first use.

    Later calls get the existing breaker; their arguments are ignored.
    """
    with _registry_lock:
        breaker = _breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                config,
                metrics_collector=metrics_collector,
                error_classifier=error_classifier,
            )
            _breakers[name] = breaker
            logger.debug("Created circuit breaker: circuit_name=%s", name)
        return breaker


def reset_circuit_breakers() -> None:
    """Drop all registered breakers (process restart semantics, used by tests)."""
    with _registry_lock:
        _breakers.clear()


__all__ = [
    "COUNTED_CATEGORIES",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "CircuitStats",
    "ErrorClassifier",
    "MetricsCollector",
    "category_of",
    "get_circuit_breaker",
    "reset_circuit_breakers",
]
