"""
Circuit breaker for outbound calls to the payment provider and the
messaging API.

States:
1. CLOSED: requests pass through, consecutive failures are counted
2. OPEN: after failure_threshold failures, requests fail fast
3. HALF_OPEN: after timeout_seconds, a few trial requests decide whether to
   close again or reopen

Usage:
    from order_agent.services.payments.circuit_breaker import razorpay_breaker

    async with razorpay_breaker.call():
        response = await client.post(...)
"""

import asyncio
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from enum import Enum

from shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker instance."""
    name: str
    failure_threshold: int = 5       # Consecutive failures before opening
    success_threshold: int = 2       # Half-open successes before closing
    timeout_seconds: float = 30.0    # Open time before the first trial call
    half_open_max_calls: int = 2     # Concurrent trial calls allowed


@dataclass
class CircuitBreakerStats:
    """Counters for health checks."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and the call is rejected."""

    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{breaker_name}' is open. Retry after {retry_after:.1f}s")


class CircuitBreaker:
    """
    Asyncio circuit breaker.

    State changes happen under an asyncio lock; the protected call itself
    runs outside it.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._half_open_successes = 0
        self._half_open_in_flight = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()
        self._stats = CircuitBreakerStats()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.info(
            f"Circuit breaker '{self.name}' state change",
            old_state=self._state.value,
            new_state=new_state.value,
            failures=self._failures,
        )
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_successes = 0
            self._half_open_in_flight = 0
        else:
            self._failures = 0
            self._opened_at = None

    async def _admit(self) -> None:
        """Let a call through or raise CircuitBreakerError."""
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.config.timeout_seconds:
                    self._stats.rejected_calls += 1
                    raise CircuitBreakerError(self.name, self.config.timeout_seconds - elapsed)
                self._set_state(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_in_flight >= self.config.half_open_max_calls:
                    self._stats.rejected_calls += 1
                    raise CircuitBreakerError(self.name, 1.0)
                self._half_open_in_flight += 1

    async def record_success(self) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1
            self._stats.last_success_time = time.time()

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
            else:
                self._failures = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.last_failure_time = time.time()
            self._failures += 1

            logger.warning(
                f"Circuit breaker '{self.name}' recorded failure",
                error=str(error) if error else None,
                failures=self._failures,
                threshold=self.config.failure_threshold,
            )

            if self._state == CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN)
            elif self._failures >= self.config.failure_threshold:
                self._set_state(CircuitState.OPEN)

    @asynccontextmanager
    async def call(self) -> AsyncGenerator[None, None]:
        """
        Guard a block of code that talks to the external service.

        Raises:
            CircuitBreakerError: If the circuit is open
        """
        await self._admit()
        try:
            yield
        except Exception as e:
            await self.record_failure(e)
            raise
        await self.record_success()

    async def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        async with self._lock:
            self._set_state(CircuitState.CLOSED)
            self._failures = 0
            logger.info(f"Circuit breaker '{self.name}' manually reset")

    def snapshot(self) -> dict:
        return {"state": self._state.value, **asdict(self._stats)}


# =============================================================================
# Pre-configured Circuit Breakers
# =============================================================================

# Razorpay payment links
razorpay_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="razorpay",
        failure_threshold=5,
        success_threshold=2,
        timeout_seconds=30.0,
        half_open_max_calls=2,
    )
)

# WhatsApp Cloud API; replies are short-lived so recover quickly
whatsapp_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="whatsapp",
        failure_threshold=5,
        success_threshold=1,
        timeout_seconds=15.0,
        half_open_max_calls=1,
    )
)


def get_all_breaker_stats() -> dict[str, dict]:
    """Statistics for all circuit breakers, for the detailed health check."""
    return {
        breaker.name: breaker.snapshot()
        for breaker in (razorpay_breaker, whatsapp_breaker)
    }
