"""
CircuitBreaker - Prevents cascading failures by stopping requests to failing mirrors.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Mirror is failing, requests are blocked
- HALF_OPEN: Testing if mirror has recovered

Transitions:
- CLOSED → OPEN: When failure_threshold is reached
- OPEN → HALF_OPEN: After reset_timeout expires
- HALF_OPEN → CLOSED: On successful probe
- HALF_OPEN → OPEN: On failed probe (timer restarts)

Only ``half_open_max_requests`` probes are admitted while HALF_OPEN; any
further caller is rejected until the probe settles.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from wikigate.services.errors import CircuitOpenError

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 3  # Failures before opening
    reset_timeout: timedelta = timedelta(seconds=30)  # Time before half-open
    half_open_max_requests: int = 1  # Requests allowed in half-open state
    success_threshold: int = 1  # Successes needed to close from half-open


class CircuitBreaker:
    """
    Circuit breaker implementation for a single mirror.

    Usage:
        cb = CircuitBreaker("https://en.wikipedia.org")
        data = await cb.execute(lambda: client.get(url))
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: datetime | None = None
        self._opened_at: datetime | None = None
        self._half_open_requests = 0

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        if self._state == CircuitState.OPEN:
            if (
                self._opened_at
                and self._clock() - self._opened_at > self.config.reset_timeout
            ):
                self._state = CircuitState.HALF_OPEN
                self._half_open_requests = 0
                self._success_count = 0
                logger.info(
                    f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN"
                )
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def can_request(self) -> bool:
        """Check if a request is allowed."""
        current_state = self.state

        if current_state == CircuitState.CLOSED:
            return True

        if current_state == CircuitState.OPEN:
            return False

        # HALF_OPEN: Allow limited requests
        return self._half_open_requests < self.config.half_open_max_requests

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        is_failure: Callable[[Exception], bool] | None = None,
    ) -> T:
        """
        Run ``operation`` through the breaker.

        Errors for which ``is_failure`` returns False still propagate but are
        settled as a success: the mirror answered, the request was bad.

        Raises:
            CircuitOpenError: If the circuit rejects the call. The operation
                is not invoked in that case.
        """
        probing = self._admit()
        try:
            result = await operation()
        except asyncio.CancelledError:
            if probing:
                self._half_open_requests -= 1
            raise
        except Exception as e:
            if is_failure is None or is_failure(e):
                self.record_failure()
            else:
                self.record_success()
            raise
        self.record_success()
        return result

    def _admit(self) -> bool:
        """Reserve a slot for one call. Returns True when the call is a probe."""
        current_state = self.state

        if current_state == CircuitState.OPEN:
            raise CircuitOpenError(self.service_id, self.get_time_until_reset() or 0)

        if current_state == CircuitState.HALF_OPEN:
            if self._half_open_requests >= self.config.half_open_max_requests:
                raise CircuitOpenError(self.service_id, 0)
            self._half_open_requests += 1
            return True

        return False

    def record_success(self) -> None:
        """Record a successful request."""
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            self._half_open_requests = max(0, self._half_open_requests - 1)
            if self._success_count >= self.config.success_threshold:
                self._close()
        elif self._state == CircuitState.CLOSED:
            # Reset failure count on success
            self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed request."""
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            # Any failure in half-open reopens the circuit
            self._open()
        elif self._state == CircuitState.CLOSED:
            if self._failure_count >= self.config.failure_threshold:
                self._open()

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_requests = 0
        logger.warning(
            f"Circuit breaker '{self.service_id}' OPENED after {self._failure_count} failures"
        )

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        if self._state != CircuitState.OPEN or not self._opened_at:
            return None

        reset_at = self._opened_at + self.config.reset_timeout
        remaining = (reset_at - self._clock()).total_seconds()
        return max(0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "last_failure": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "opened_at": (self._opened_at.isoformat() if self._opened_at else None),
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    Registry for managing one circuit breaker per mirror.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("https://en.wikipedia.org")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock

    def get(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for a mirror."""
        if service_id not in self._breakers:
            self._breakers[service_id] = CircuitBreaker(
                service_id,
                config or self._default_config,
                clock=self._clock,
            )
        return self._breakers[service_id]

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {
            service_id: cb.get_status() for service_id, cb in self._breakers.items()
        }

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for cb in self._breakers.values():
            cb.reset()
        logger.info(f"Reset {len(self._breakers)} circuit breakers")

    def reset(self, service_id: str) -> bool:
        """Reset a specific circuit breaker."""
        if service_id in self._breakers:
            self._breakers[service_id].reset()
            return True
        return False

    def get_open_circuits(self) -> list[str]:
        """Get list of mirrors with open circuits."""
        return [
            service_id
            for service_id, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]
