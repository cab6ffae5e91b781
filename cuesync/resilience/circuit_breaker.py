"""Per-provider circuit breaker.

A provider that keeps failing is taken out of rotation for a while: its
deliveries fail fast with ``CircuitBreakerError`` instead of waiting on the
network, and a few trial calls decide when it is healthy again.

Only recoverable errors count toward opening a circuit. A missing or
rejected credential fails the same way on every call, so it is reported as
is rather than masked by an open circuit.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from cuesync.errors import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def counts_as_failure(exc: BaseException) -> bool:
    """True when ``exc`` is a transient provider failure."""
    return classify_error(exc).recoverable


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking calls
    HALF_OPEN = "half_open"  # Trial calls allowed


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds.

    Attributes:
        failure_threshold: Consecutive failures before opening
        success_threshold: Consecutive half-open successes before closing
        reset_timeout: Seconds to stay open before allowing trial calls
        call_timeout: Max seconds per protected call
    """

    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    reset_timeout: float = Field(default=60.0, ge=0)
    call_timeout: float = Field(default=60.0, gt=0)


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    opened_at: float | None = None


class CircuitBreakerError(Exception):
    """Raised when an open circuit rejects a call.

    Attributes:
        state: Circuit state at rejection time
        last_error: Most recent failure recorded before the rejection
    """

    def __init__(
        self, message: str, state: CircuitState, last_error: BaseException | None = None
    ) -> None:
        super().__init__(message)
        self.state = state
        self.last_error = last_error


class CircuitBreaker:
    """Circuit breaker protecting calls to one provider.

    States:
        - CLOSED: calls pass through
        - OPEN: calls are rejected until ``reset_timeout`` has elapsed
        - HALF_OPEN: calls pass through; enough successes close the circuit,
          any failure opens it again
    """

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        is_failure: Callable[[BaseException], bool] = counts_as_failure,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            service_name: Name of the protected provider
            config: Circuit breaker configuration
            clock: Monotonic time source in seconds
            is_failure: Decides whether an exception counts toward opening
        """
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._is_failure = is_failure
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._last_error: BaseException | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` under circuit protection and ``call_timeout``.

        Raises:
            CircuitBreakerError: If the circuit is open
            TimeoutError: If the call exceeds ``call_timeout``
            Exception: Whatever ``func`` raises
        """
        await self._before_call()

        try:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.call_timeout)
        except TimeoutError as e:
            logger.warning(
                f"⏱️ Call to '{self.service_name}' timed out after {self.config.call_timeout}s"
            )
            await self._record_failure(e)
            raise
        except Exception as e:
            if self._is_failure(e):
                await self._record_failure(e)
            else:
                logger.debug(f"Circuit '{self.service_name}' ignores non-transient error: {e}")
            raise

        await self._record_success()
        return result

    async def _before_call(self) -> None:
        async with self._lock:
            if self._state is not CircuitState.OPEN:
                return
            opened_at = self._stats.opened_at or 0.0
            if self._clock() - opened_at >= self.config.reset_timeout:
                logger.info(f"⚡ Circuit '{self.service_name}' entering HALF_OPEN state")
                self._state = CircuitState.HALF_OPEN
                self._stats.consecutive_successes = 0
                return
            self._stats.rejected_calls += 1
            detail = ""
            if self._last_error is not None:
                detail = f" (last error: {self._last_error})"
            raise CircuitBreakerError(
                f"Circuit '{self.service_name}' is OPEN - rejecting call{detail}",
                self._state,
                last_error=self._last_error,
            )

    async def _record_success(self) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1
            self._stats.consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._stats.consecutive_successes += 1
                if self._stats.consecutive_successes >= self.config.success_threshold:
                    logger.info(f"✅ Circuit '{self.service_name}' CLOSED (provider recovered)")
                    self._state = CircuitState.CLOSED
                    self._stats.opened_at = None

    async def _record_failure(self, error: BaseException) -> None:
        async with self._lock:
            self._last_error = error
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.consecutive_failures += 1
            self._stats.consecutive_successes = 0

            if self._state is CircuitState.HALF_OPEN:
                logger.warning(f"⚠️ Circuit '{self.service_name}' HALF_OPEN failed - back to OPEN")
                self._open()
            elif (
                self._state is CircuitState.CLOSED
                and self._stats.consecutive_failures >= self.config.failure_threshold
            ):
                logger.error(
                    f"🔴 Circuit '{self.service_name}' OPEN "
                    f"({self._stats.consecutive_failures} consecutive failures)"
                )
                self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._stats.opened_at = self._clock()

    def get_stats_summary(self) -> dict[str, Any]:
        total = self._stats.total_calls
        return {
            "service_name": self.service_name,
            "state": self._state.value,
            "total_calls": total,
            "successful_calls": self._stats.successful_calls,
            "failed_calls": self._stats.failed_calls,
            "rejected_calls": self._stats.rejected_calls,
            "consecutive_failures": self._stats.consecutive_failures,
            "success_rate": self._stats.successful_calls / total if total else 0.0,
        }


class CircuitBreakerRegistry:
    """One breaker per provider, created on first use."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        is_failure: Callable[[BaseException], bool] = counts_as_failure,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._is_failure = is_failure
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_or_create_breaker(self, service_name: str) -> CircuitBreaker:
        if service_name not in self._breakers:
            self._breakers[service_name] = CircuitBreaker(
                service_name, self.config, self._clock, self._is_failure
            )
            logger.info(
                f"Created circuit breaker for '{service_name}' "
                f"(failure_threshold={self.config.failure_threshold})"
            )
        return self._breakers[service_name]

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats_summary() for name, breaker in self._breakers.items()}
