"""Tunable settings for fetching and detection.

Defaults come from :mod:`subscription_scanner.constants`; the CLI builds
instances with overrides from its options.
"""

from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    BATCH_DECREASE_STEP,
    BATCH_INCREASE_STEP,
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_HALF_OPEN_PROBES,
    CIRCUIT_RESET_TIMEOUT,
    DEFAULT_BATCH_SIZE,
    HIGH_CONFIDENCE_SCORE,
    INITIAL_RETRY_DELAY,
    JITTER_MAX,
    MAX_BATCH_SIZE,
    MAX_EMAILS_TO_SCAN,
    MAX_RETRIES,
    MAX_RETRY_DELAY,
    MIN_BATCH_SIZE,
    MIN_CONFIDENCE_SCORE,
    MIN_REQUEST_SPACING,
    MONTHS_TO_SCAN,
    PAGE_SIZE,
    SUCCESSES_BEFORE_INCREASE,
)


@dataclass(frozen=True)
class RateLimitConfig:
    """Retry, throttling, circuit breaker and batch sizing parameters."""

    initial_retry_delay: float = INITIAL_RETRY_DELAY
    max_retry_delay: float = MAX_RETRY_DELAY
    max_retries: int = MAX_RETRIES
    jitter_max: float = JITTER_MAX
    min_request_spacing: float = MIN_REQUEST_SPACING

    circuit_failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD
    circuit_reset_timeout: float = CIRCUIT_RESET_TIMEOUT
    circuit_half_open_probes: int = CIRCUIT_HALF_OPEN_PROBES

    min_batch_size: int = MIN_BATCH_SIZE
    max_batch_size: int = MAX_BATCH_SIZE
    default_batch_size: int = DEFAULT_BATCH_SIZE
    batch_increase_step: int = BATCH_INCREASE_STEP
    batch_decrease_step: int = BATCH_DECREASE_STEP
    successes_before_increase: int = SUCCESSES_BEFORE_INCREASE

    def retry_delay(self, attempt: int, jitter: float = 0.0) -> float:
        """Exponential backoff for a 0-based attempt, capped, then scaled by ``1 + jitter``."""
        capped = min(self.initial_retry_delay * (2 ** attempt), self.max_retry_delay)
        return capped * (1.0 + jitter)


@dataclass(frozen=True)
class DetectionConfig:
    """Scan scope and confidence thresholds."""

    max_emails_to_scan: int = MAX_EMAILS_TO_SCAN
    months_to_scan: int = MONTHS_TO_SCAN
    min_confidence_score: int = MIN_CONFIDENCE_SCORE
    high_confidence_score: int = HIGH_CONFIDENCE_SCORE
    use_category_filter: bool = True
    metadata_only: bool = True
    page_size: int = PAGE_SIZE

    @property
    def message_format(self) -> str:
        return "metadata" if self.metadata_only else "full"
