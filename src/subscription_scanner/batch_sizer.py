"""Adaptive width for concurrent message fetches."""

from __future__ import annotations

import threading

import structlog

from .config import RateLimitConfig

logger = structlog.get_logger()


class AdaptiveBatchSizer:
    """Shrinks the batch fast on rate limiting and grows it slowly on success."""

    def __init__(self, config: RateLimitConfig | None = None, initial_size: int | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._lock = threading.Lock()
        size = self.config.default_batch_size if initial_size is None else initial_size
        self._size = self._clamp(size)
        self._success_streak = 0

    @property
    def batch_size(self) -> int:
        with self._lock:
            return self._size

    @property
    def success_streak(self) -> int:
        with self._lock:
            return self._success_streak

    def record_success(self) -> None:
        with self._lock:
            self._success_streak += 1
            if self._success_streak >= self.config.successes_before_increase:
                self._resize(self._size + self.config.batch_increase_step)
                self._success_streak = 0

    def record_rate_limit(self) -> None:
        with self._lock:
            self._success_streak = 0
            self._resize(self._size - self.config.batch_decrease_step)

    def record_failure(self) -> None:
        """Non-rate-limit failure: break the streak, keep the width."""
        with self._lock:
            self._success_streak = 0

    def reset(self) -> None:
        with self._lock:
            self._size = self._clamp(self.config.default_batch_size)
            self._success_streak = 0

    def _clamp(self, size: int) -> int:
        return min(max(size, self.config.min_batch_size), self.config.max_batch_size)

    def _resize(self, size: int) -> None:
        new_size = self._clamp(size)
        if new_size != self._size:
            logger.debug("batch_size_changed", old=self._size, new=new_size)
        self._size = new_size
