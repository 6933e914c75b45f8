"""Request pacing and exponential backoff for Gmail API calls."""

from __future__ import annotations

import random
import threading
import time
from datetime import datetime, timezone
from typing import Callable

import structlog

from .config import RateLimitConfig

logger = structlog.get_logger()

# IMF-fixdate, RFC 850, ANSI C asctime
_HTTP_DATE_FORMATS = (
    "%a, %d %b %Y %H:%M:%S GMT",
    "%A, %d-%b-%y %H:%M:%S GMT",
    "%a %b %d %H:%M:%S %Y",
)


def parse_http_date(value: str) -> datetime | None:
    """Parse an HTTP-date in any of the three formats RFC 7231 allows."""
    for fmt in _HTTP_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


class RateLimiter:
    """Spaces requests out and tracks retry attempts.

    All state sits behind one lock. Sleeping happens outside the lock, so a
    caller waiting for its slot never holds up another caller reserving the
    next one.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._last_request_at: float | None = None
        self._next_allowed_at: float | None = None
        self._attempt = 0

    # --- pacing ---

    def wait_for_next_request(self) -> float:
        """Block until the retry-after deadline and minimum spacing allow a request.

        Returns the number of seconds slept.
        """
        with self._lock:
            now = self._clock()
            start = now
            if self._next_allowed_at is not None:
                start = max(start, self._next_allowed_at)
            if self._last_request_at is not None:
                start = max(start, self._last_request_at + self.config.min_request_spacing)
            self._last_request_at = start
        delay = start - now
        if delay > 0:
            self._sleep(delay)
        return max(delay, 0.0)

    # --- backoff ---

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt`` failed retries.

        Leaves the attempt counter alone.
        """
        with self._lock:
            jitter = self._rng.uniform(0.0, self.config.jitter_max)
        return self.config.retry_delay(attempt, jitter)

    def record_retry(self, delay: float) -> int:
        """Count a retry that is about to sleep ``delay`` seconds."""
        with self._lock:
            self._attempt += 1
            attempt = self._attempt
        logger.debug("backoff_scheduled", attempt=attempt, delay=round(delay, 3))
        return attempt

    def next_backoff_delay(self) -> float:
        """Compute the delay for the current attempt and advance the attempt counter."""
        with self._lock:
            jitter = self._rng.uniform(0.0, self.config.jitter_max)
            delay = self.config.retry_delay(self._attempt, jitter)
            self._attempt += 1
            attempt = self._attempt
        logger.debug("backoff_scheduled", attempt=attempt, delay=round(delay, 3))
        return delay

    def apply_backoff(self) -> float:
        """Sleep for the current backoff delay; returns the delay applied."""
        delay = self.next_backoff_delay()
        self._sleep(delay)
        return delay

    def parse_retry_after(self, value: str | None) -> bool:
        """Record a Retry-After header as an absolute deadline.

        Accepts integer seconds or an HTTP-date. Returns ``False`` and leaves any
        existing deadline alone when the value is missing or unparsable.
        """
        if not value:
            return False
        value = value.strip()
        deadline: float | None = None
        if value.isdigit():
            deadline = self._clock() + int(value)
        else:
            parsed = parse_http_date(value)
            if parsed is not None:
                deadline = parsed.timestamp()
        if deadline is None:
            logger.debug("retry_after_unparsable", value=value)
            return False
        with self._lock:
            self._next_allowed_at = deadline
        return True

    @property
    def has_exceeded_max_retries(self) -> bool:
        with self._lock:
            return self._attempt >= self.config.max_retries

    @property
    def retry_attempt(self) -> int:
        with self._lock:
            return self._attempt

    @property
    def time_until_next_request(self) -> float | None:
        """Seconds left on a retry-after deadline, ``None`` when there is none."""
        with self._lock:
            if self._next_allowed_at is None:
                return None
            remaining = self._next_allowed_at - self._clock()
        return remaining if remaining > 0 else None

    def reset_attempts(self) -> None:
        """Clear the attempt counter but keep any retry-after deadline."""
        with self._lock:
            self._attempt = 0

    def reset_retry_state(self) -> None:
        """Clear the attempt counter and any deadline after a successful call."""
        with self._lock:
            self._attempt = 0
            self._next_allowed_at = None
