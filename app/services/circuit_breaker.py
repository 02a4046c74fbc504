"""
Circuit breaker implementation using pybreaker library.
State is kept in Redis so every API replica and worker sees the same
breaker state for the payment gateway.
"""
import logging

import pybreaker
import redis

from app.core.config import settings
from app.utils.metrics import circuit_breaker_state


logger = logging.getLogger("circuit_breaker")


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener for circuit breaker events (logging/metrics)."""

    def __init__(self, name: str) -> None:
        self.name = name

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        new_name = getattr(new_state, "name", str(new_state))
        circuit_breaker_state.labels(name=self.name).set(1 if new_name == pybreaker.STATE_OPEN else 0)
        logger.warning(
            "circuit_breaker_state_change",
            extra={
                "breaker_name": self.name,
                "old_state": getattr(old_state, "name", str(old_state)),
                "new_state": new_name,
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.warning(
            "circuit_breaker_failure",
            extra={
                "breaker_name": self.name,
                "error": type(exc).__name__,
            },
        )


def build_circuit_breaker(
    name: str,
    client: redis.Redis | None = None,
    exclude: list | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Create a breaker for one upstream.
    With a Redis client (decode_responses=False) state is shared across processes,
    otherwise it is kept in memory of the current process.
    `exclude` holds exception types or predicates that must not count as failures.
    """
    kwargs = {}
    if client is not None:
        kwargs["state_storage"] = pybreaker.CircuitRedisStorage(
            pybreaker.STATE_CLOSED, client, namespace=f"cb:{name}"
        )
    return pybreaker.CircuitBreaker(
        fail_max=settings.cb_failure_threshold,
        reset_timeout=settings.cb_open_seconds,
        exclude=exclude or [],
        listeners=[CircuitBreakerListener(name)],
        name=name,
        **kwargs,
    )
