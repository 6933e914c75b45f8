"""Scan orchestration - pick a strategy, fetch, run both passes, commit."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable

import structlog

from .batch_sizer import AdaptiveBatchSizer
from .cache import MessageCache
from .candidates import group_into_candidates
from .circuit_breaker import CircuitBreaker
from .config import DetectionConfig, RateLimitConfig
from .exceptions import CursorExpiredError, ScannerError, UnauthorizedError
from .fetcher import ResilientFetchClient
from .gmail_client import MailApi, build_search_query
from .merchants import MerchantDatabase
from .models import DetectionResult, Message, ScanMode, ScanPhase, ScanProgress
from .rate_limiter import RateLimiter
from .rules import DEFAULT_RULES, RuleSet
from .scorer import score_candidates
from .storage import StateStorage
from .sync_state import SyncStateStore

logger = structlog.get_logger()

ProgressCallback = Callable[[ScanProgress], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_detection_engine(
    api: MailApi,
    storage: StateStorage,
    config: DetectionConfig | None = None,
    rate_config: RateLimitConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DetectionEngine:
    """Wire one set of resilience components, cache and sync store around ``api``."""
    config = config or DetectionConfig()
    rate_config = rate_config or RateLimitConfig()
    cache = MessageCache(storage)
    fetcher = ResilientFetchClient(
        api,
        RateLimiter(rate_config, sleep=sleep),
        CircuitBreaker(rate_config),
        AdaptiveBatchSizer(rate_config),
        cache,
        config,
        sleep=sleep,
        max_workers=rate_config.max_batch_size,
    )
    return DetectionEngine(fetcher, cache, SyncStateStore(storage), config=config)


class DetectionEngine:
    """Runs subscription scans against one mailbox.

    Scans are serialized: a scan started while another is running waits for
    it. Sync state is written only after the subscription list is built, so
    an aborted scan leaves the previous checkpoint untouched.
    """

    def __init__(
        self,
        fetcher: ResilientFetchClient,
        cache: MessageCache,
        sync_store: SyncStateStore,
        rules: RuleSet | None = None,
        merchants: MerchantDatabase | None = None,
        config: DetectionConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.sync_store = sync_store
        self.rules = rules or DEFAULT_RULES
        self.merchants = merchants or MerchantDatabase()
        self.config = config or DetectionConfig()
        self._clock = clock
        self._scan_lock = threading.Lock()

    # --- public API ---

    def scan(
        self,
        mode: ScanMode = ScanMode.INCREMENTAL,
        on_progress: ProgressCallback | None = None,
    ) -> DetectionResult:
        with self._scan_lock:
            return self._scan(mode, on_progress)

    def force_full_scan(self, on_progress: ProgressCallback | None = None) -> DetectionResult:
        """Forget the checkpoint and every cached message, then scan everything."""
        with self._scan_lock:
            self.sync_store.clear()
            self.cache.clear()
            logger.info("sync_state_reset")
            return self._scan(ScanMode.FULL, on_progress)

    def can_perform_incremental_sync(self) -> bool:
        return self.sync_store.can_perform_incremental_sync()

    def last_sync_info(self) -> tuple[datetime, str] | None:
        """Date of the last sync and its label ("Quick Scan" or "Full Scan")."""
        info = self.sync_store.last_sync_info()
        if info is None:
            return None
        date, mode = info
        return date, mode.display_name

    # --- internals ---

    def _scan(self, requested: ScanMode, on_progress: ProgressCallback | None) -> DetectionResult:
        started = time.monotonic()

        def report(phase: ScanPhase, emails: int = 0, candidates: int = 0, merchant: str | None = None) -> None:
            if on_progress is not None:
                on_progress(ScanProgress(phase, emails, candidates, merchant))

        report(ScanPhase.STARTING)
        self.cache.prune_expired()

        mode = self.sync_store.choose_mode(requested)
        logger.info("scan_started", requested=requested.value, mode=mode.value)
        report(ScanPhase.FETCHING)

        cursor: str | None = None
        messages: list[Message] = []
        if mode is ScanMode.INCREMENTAL:
            try:
                messages, cursor = self._fetch_incremental(lambda n: report(ScanPhase.FETCHING, n))
            except CursorExpiredError:
                logger.warning("cursor_expired_falling_back", stored=self.sync_store.get_state().cursor)
                mode = ScanMode.FULL
        if mode is ScanMode.FULL:
            messages, cursor = self._fetch_full(lambda n: report(ScanPhase.FETCHING, n))

        emails = len(messages)
        candidates = group_into_candidates(messages, self.rules, self.merchants)
        report(ScanPhase.ANALYZING, emails, len(candidates))

        subscriptions = score_candidates(
            candidates,
            self.rules,
            self.config,
            now=self._clock(),
            on_candidate=lambda name: report(ScanPhase.ANALYZING, emails, len(candidates), name),
        )

        processed_ids = [m.message_id for m in messages]
        if mode is ScanMode.FULL:
            self.sync_store.mark_full_scan_complete(cursor, processed_ids, len(subscriptions), emails)
        else:
            self.sync_store.mark_incremental_sync_complete(cursor, processed_ids, len(subscriptions), emails)

        report(ScanPhase.COMPLETE, emails, len(subscriptions))
        duration = time.monotonic() - started
        logger.info(
            "scan_finished",
            mode=mode.value,
            emails=emails,
            candidates=len(candidates),
            subscriptions=len(subscriptions),
            duration=round(duration, 2),
        )
        return DetectionResult(
            subscriptions=subscriptions,
            emails_scanned=emails,
            mode=mode,
            scan_duration=duration,
        )

    def _fetch_incremental(self, on_batch: Callable[[int], None]) -> tuple[list[Message], str | None]:
        state = self.sync_store.get_state()
        changes = self.fetcher.fetch_changes(state.cursor)
        new_ids = [mid for mid in changes.new_message_ids if mid not in state.processed_ids]
        if not new_ids:
            logger.info("no_new_messages", cursor=changes.latest_cursor)
            return [], changes.latest_cursor
        messages = self.fetcher.fetch_messages(new_ids, on_batch=on_batch)
        return messages, changes.latest_cursor

    def _fetch_full(self, on_batch: Callable[[int], None]) -> tuple[list[Message], str | None]:
        # Read the cursor first so changes made during the scan are picked up next time
        try:
            cursor = self.fetcher.get_current_cursor()
        except UnauthorizedError:
            raise
        except ScannerError as exc:
            logger.warning("cursor_unavailable", error=str(exc))
            cursor = None

        query = build_search_query(self.config)
        ids = self.fetcher.search_message_ids(query, self.config.max_emails_to_scan)
        logger.info("search_complete", matched=len(ids))
        messages = self.fetcher.fetch_messages(ids, on_batch=on_batch)
        return messages, cursor
