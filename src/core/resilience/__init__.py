"""
Resilience patterns module.

Components:
    - CircuitBreaker: State machine (closed/open/half-open) guarding a sink
    - get_circuit_breaker: Process-wide named breaker registry
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    CircuitStats,
    get_circuit_breaker,
    reset_circuit_breakers,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "CircuitStats",
    "get_circuit_breaker",
    "reset_circuit_breakers",
]
