"""Shared circuit breaker implementation.

Circuit breaker pattern prevents cascading failures by stopping requests
to a failing service. After recovery_timeout, allows a test request through
(half-open state). If test succeeds, circuit closes. If fails, circuit opens again.

State changes are reported to an optional service logger (any object with
circuit_state_change / circuit_open / circuit_recovery_attempt / circuit_closed),
so each integration logs breaker events under its own logger name.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject all requests
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int
    recovery_timeout: float


class CircuitEventLogger(Protocol):
    """Logger interface for circuit breaker events."""

    def circuit_state_change(
        self, previous_state: str, new_state: str, failure_count: int
    ) -> None: ...

    def circuit_open(self, failure_count: int, recovery_timeout: float) -> None: ...

    def circuit_recovery_attempt(self) -> None: ...

    def circuit_closed(self) -> None: ...


class CircuitBreaker:
    """Circuit breaker for outbound integration calls."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        name: str = "default",
        event_logger: CircuitEventLogger | None = None,
    ) -> None:
        self._config = config
        self._name = name
        self._event_logger = event_logger
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        """Get circuit breaker name."""
        return self._name

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current failure count."""
        return self._failure_count

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed (normal operation)."""
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (rejecting requests)."""
        return self._state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        """Check if circuit is half-open (testing recovery)."""
        return self._state == CircuitState.HALF_OPEN

    def _recovery_due(self) -> bool:
        if self._last_failure_time is None:
            return False
        elapsed = time.monotonic() - self._last_failure_time
        return elapsed >= self._config.recovery_timeout

    def _transition(self, new_state: CircuitState) -> None:
        previous_state = self._state.value
        self._state = new_state
        if self._event_logger is not None:
            self._event_logger.circuit_state_change(
                previous_state, new_state.value, self._failure_count
            )
        else:
            logger.info(
                "Circuit breaker state change",
                extra={
                    "circuit_name": self._name,
                    "previous_state": previous_state,
                    "new_state": new_state.value,
                    "failure_count": self._failure_count,
                },
            )

        if new_state == CircuitState.OPEN:
            if self._event_logger is not None:
                self._event_logger.circuit_open(
                    self._failure_count, self._config.recovery_timeout
                )
            else:
                logger.warning(
                    "Circuit breaker opened",
                    extra={
                        "circuit_name": self._name,
                        "failure_count": self._failure_count,
                        "recovery_timeout": self._config.recovery_timeout,
                    },
                )
        elif new_state == CircuitState.HALF_OPEN and self._event_logger is not None:
            self._event_logger.circuit_recovery_attempt()
        elif new_state == CircuitState.CLOSED and self._event_logger is not None:
            self._event_logger.circuit_closed()

    async def can_execute(self) -> bool:
        """Check if operation can be executed based on circuit state."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._recovery_due():
                    self._transition(CircuitState.HALF_OPEN)
                    return True
                return False

            # HALF_OPEN: let the probe through
            return True

    async def record_success(self) -> None:
        """Record successful operation."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._failure_count = 0
                self._last_failure_time = None
                self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record failed operation."""
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)
