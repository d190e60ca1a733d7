"""
Cache Backend Circuit Breaker

Stops calling the shared cache backend after repeated failures so that a
dead Redis costs one fast local lookup per operation instead of one socket
timeout per operation.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional
from dataclasses import dataclass

from .exceptions import CacheCircuitOpenException

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, skip the backend
    HALF_OPEN = "half_open"  # Probing whether the backend recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    # Consecutive failures before opening
    failure_threshold: int = 5

    # Seconds to wait before probing again
    recovery_timeout: float = 30.0

    # Successful probes needed to close the circuit
    success_threshold: int = 1


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate."""
        if self.total_calls == 0:
            return 0.0
        return self.failed_calls / self.total_calls


class BackendCircuitBreaker:
    """
    Circuit breaker guarding shared cache backend calls.

    The breaker does not run the call itself: callers ask ``before_call()``
    for permission and report the outcome with ``record_success()`` or
    ``record_failure()``. All state changes happen between await points, so
    no lock is needed under asyncio.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.metrics = CircuitBreakerMetrics()
        self._clock = clock

    def before_call(self) -> None:
        """
        Check whether a backend call may proceed.

        Raises:
            CacheCircuitOpenException: If the circuit is open and the
                recovery timeout has not elapsed yet
        """
        self.metrics.total_calls += 1

        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN",
                    extra={"failure_count": self.failure_count},
                )
            else:
                self.metrics.rejected_calls += 1
                raise CacheCircuitOpenException()

    def record_success(self) -> None:
        """Record a successful backend call."""
        self.metrics.successful_calls += 1
        self.metrics.last_success_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.success_count = 0
                logger.info("Circuit breaker: circuit closed after recovery")
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def record_failure(self, failure_type: str) -> None:
        """Record a failed backend call."""
        now = self._clock()
        self.metrics.failed_calls += 1
        self.metrics.last_failure_time = now
        self.last_failure_time = now

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            self.success_count = 0
            self.metrics.circuit_opens += 1
            logger.warning(
                "Circuit breaker: circuit opened again after failed probe",
                extra={"failure_type": failure_type},
            )

        elif self.state == CircuitState.CLOSED:
            self.failure_count += 1

            if self.failure_count >= self.config.failure_threshold:
                self.state = CircuitState.OPEN
                self.metrics.circuit_opens += 1
                logger.warning(
                    "Circuit breaker: circuit opened due to failure threshold",
                    extra={
                        "failure_count": self.failure_count,
                        "threshold": self.config.failure_threshold,
                        "failure_type": failure_type,
                    },
                )

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt circuit reset."""
        if self.last_failure_time is None:
            return True

        return self._clock() - self.last_failure_time >= self.config.recovery_timeout

    def get_status(self) -> dict:
        """Get current circuit breaker status for monitoring."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "failure_rate": self.metrics.failure_rate,
                "circuit_opens": self.metrics.circuit_opens,
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
            },
        }

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        logger.info("Circuit breaker manually reset to CLOSED state")
