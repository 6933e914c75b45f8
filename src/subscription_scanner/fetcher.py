"""Resilient fetch layer on top of the Gmail transport.

Every remote call goes through :meth:`ResilientFetchClient.execute`, which
checks the circuit breaker, paces the request and retries transient
failures with exponential backoff (via tenacity). Message bodies are read
through the :class:`MessageCache` and fetched concurrently in adaptive
batches.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, TypeVar

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from .batch_sizer import AdaptiveBatchSizer
from .cache import MessageCache
from .circuit_breaker import CircuitBreaker
from .config import DetectionConfig
from .constants import MAX_BATCH_SIZE
from .exceptions import (
    CircuitOpenError,
    CursorExpiredError,
    MaxRetriesExceededError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from .gmail_client import MailApi
from .models import IncrementalSyncResult, Message
from .rate_limiter import RateLimiter

logger = structlog.get_logger()

T = TypeVar("T")

_RETRYABLE = (RateLimitedError, TransportError, ServerError)


class ResilientFetchClient:
    def __init__(
        self,
        api: MailApi,
        rate_limiter: RateLimiter,
        circuit_breaker: CircuitBreaker,
        batch_sizer: AdaptiveBatchSizer,
        cache: MessageCache,
        config: DetectionConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = MAX_BATCH_SIZE,
    ) -> None:
        self.api = api
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.batch_sizer = batch_sizer
        self.cache = cache
        self.config = config or DetectionConfig()
        self._sleep = sleep
        self.max_workers = max_workers

    # --- single call with retries ---

    def execute(self, operation: Callable[[], T], description: str = "gmail request") -> T:
        """Run ``operation`` under the circuit breaker, pacing and retry policy.

        Raises:
            CircuitOpenError: the breaker rejected the call.
            UnauthorizedError: the token was rejected (never retried).
            NotFoundError: the resource does not exist (never retried).
            MaxRetriesExceededError: transient failures outlasted the retry budget.
        """

        def give_up(retry_state: RetryCallState):
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            self.rate_limiter.reset_attempts()
            logger.error("retries_exhausted", operation=description, attempts=retry_state.attempt_number)
            raise MaxRetriesExceededError(
                f"{description} failed after {retry_state.attempt_number} attempts"
            ) from exc

        # stop and wait stay side-effect free; the retry counter advances in before_sleep
        retrying = Retrying(
            retry=retry_if_exception_type(_RETRYABLE),
            stop=stop_after_attempt(self.rate_limiter.config.max_retries + 1),
            wait=lambda state: self.rate_limiter.backoff_delay(state.attempt_number - 1),
            sleep=self._sleep,
            before_sleep=partial(self._before_retry, description),
            retry_error_callback=give_up,
        )
        return retrying(self._attempt, operation, description)

    def _before_retry(self, description: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.rate_limiter.record_retry(delay)
        logger.warning(
            "retrying_request",
            operation=description,
            attempt=retry_state.attempt_number,
            error=type(exc).__name__,
            status=getattr(exc, "status", None),
        )

    def _attempt(self, operation: Callable[[], T], description: str) -> T:
        if not self.circuit_breaker.can_proceed():
            raise CircuitOpenError(
                f"Circuit open, {description} rejected "
                f"(retry in {self.circuit_breaker.time_until_reset or 0:.0f}s)"
            )
        self.rate_limiter.wait_for_next_request()
        try:
            result = operation()
        except RateLimitedError as exc:
            self.circuit_breaker.record_failure()
            self.batch_sizer.record_rate_limit()
            self.rate_limiter.parse_retry_after(exc.retry_after)
            raise
        except UnauthorizedError:
            self.circuit_breaker.record_failure()
            raise
        except NotFoundError:
            raise
        except (ServerError, TransportError):
            self.circuit_breaker.record_failure()
            self.batch_sizer.record_failure()
            raise
        self.circuit_breaker.record_success()
        self.batch_sizer.record_success()
        self.rate_limiter.reset_retry_state()
        return result

    # --- search ---

    def search_message_ids(self, query: str, max_results: int) -> list[str]:
        """Page through search results until ``max_results`` ids are collected."""
        ids: list[str] = []
        page_token: str | None = None
        while len(ids) < max_results:
            page_size = min(max_results - len(ids), self.config.page_size)
            page_ids, page_token = self.execute(
                partial(self.api.search_message_ids, query, page_size, page_token),
                "search messages",
            )
            ids.extend(page_ids)
            if not page_token or not page_ids:
                break
        return ids[:max_results]

    def search_messages(self, query: str, max_results: int) -> list[Message]:
        ids = self.search_message_ids(query, max_results)
        logger.info("search_complete", matched=len(ids))
        return self.fetch_messages(ids)

    # --- message fetch ---

    def fetch_messages(
        self,
        message_ids: list[str],
        format: str | None = None,
        use_cache: bool = True,
        on_batch: Callable[[int], None] | None = None,
    ) -> list[Message]:
        """Fetch messages by id, cache first, remaining ids in concurrent batches.

        Results keep the input order. A message that no longer exists is
        skipped; any other failure aborts the fetch.
        """
        format = format or self.config.message_format
        if use_cache:
            cached, missing = self.cache.get_batch(message_ids)
        else:
            cached, missing = {}, list(message_ids)

        fetched: dict[str, Message] = {}
        if missing:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                start = 0
                while start < len(missing):
                    if start:
                        self._sleep(self.rate_limiter.config.min_request_spacing)
                    size = self.batch_sizer.batch_size
                    batch = missing[start:start + size]
                    start += len(batch)

                    futures = [(mid, pool.submit(self._fetch_one, mid, format)) for mid in batch]
                    for mid, future in futures:
                        try:
                            fetched[mid] = future.result()
                        except NotFoundError:
                            logger.warning("message_not_found", message_id=mid)
                    logger.debug("batch_fetched", size=len(batch), fetched=len(fetched))
                    if on_batch is not None:
                        on_batch(len(cached) + len(fetched))

            if use_cache and fetched:
                self.cache.set_batch(fetched.values())

        logger.info("messages_fetched", cached=len(cached), fetched=len(fetched))
        ordered = []
        for mid in message_ids:
            message = cached.get(mid) or fetched.get(mid)
            if message is not None:
                ordered.append(message)
        return ordered

    def _fetch_one(self, message_id: str, format: str) -> Message:
        return self.execute(
            partial(self.api.get_message, message_id, format),
            f"get message {message_id}",
        )

    # --- history ---

    def fetch_changes(self, cursor: str, label_id: str | None = None) -> IncrementalSyncResult:
        """Collect ids of messages added since ``cursor``.

        Raises:
            CursorExpiredError: Gmail no longer holds history that far back.
        """
        seen: set[str] = set()
        new_ids: list[str] = []
        latest = cursor
        records = 0
        page_token: str | None = None
        while True:
            try:
                page = self.execute(
                    partial(self.api.get_changes_since, cursor, label_id, page_token),
                    "list history",
                )
            except NotFoundError as exc:
                raise CursorExpiredError(f"History id {cursor} is no longer available") from exc

            records += page.records
            for mid in page.message_ids:
                if mid not in seen:
                    seen.add(mid)
                    new_ids.append(mid)
            if page.cursor:
                latest = page.cursor
            page_token = page.next_page_token
            if not page_token:
                break

        logger.info("history_fetched", new_messages=len(new_ids), records=records)
        return IncrementalSyncResult(new_message_ids=new_ids, latest_cursor=latest, records_processed=records)

    def get_current_cursor(self) -> str | None:
        return self.execute(self.api.get_profile, "get profile")
