"""Circuit breaker guarding the Gmail API against cascading failures."""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable

import structlog

from .config import RateLimitConfig

logger = structlog.get_logger()


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Three-state breaker: closed -> open -> half-open -> closed.

    The open -> half-open transition is checked lazily in :meth:`can_proceed`.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._half_open_successes = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def time_until_reset(self) -> float | None:
        with self._lock:
            if self._state is not CircuitState.OPEN or self._opened_at is None:
                return None
            remaining = self.config.circuit_reset_timeout - (self._clock() - self._opened_at)
        return remaining if remaining > 0 else None

    def can_proceed(self) -> bool:
        """Return whether a request may be sent now."""
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.OPEN:
                if (
                    self._opened_at is not None
                    and self._clock() - self._opened_at >= self.config.circuit_reset_timeout
                ):
                    self._transition(CircuitState.HALF_OPEN)
                    self._half_open_successes = 0
                    return True
                return False
            return self._half_open_successes < self.config.circuit_half_open_probes

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                self._failure_count = 0
            elif self._state is CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.circuit_half_open_probes:
                    self._close()

    def record_failure(self) -> None:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.config.circuit_failure_threshold:
                    self._open()
            elif self._state is CircuitState.HALF_OPEN:
                self._open()

    def reset(self) -> None:
        with self._lock:
            self._close()

    # --- transitions (lock held) ---

    def _open(self) -> None:
        self._transition(CircuitState.OPEN)
        self._opened_at = self._clock()
        self._half_open_successes = 0

    def _close(self) -> None:
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._opened_at = None
        self._half_open_successes = 0

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is not self._state:
            logger.info("circuit_state_changed", old=self._state.value, new=new_state.value)
        self._state = new_state
