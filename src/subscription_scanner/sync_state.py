"""Persistent checkpoint of the last sync: cursor, processed ids and timestamps."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Iterable

import structlog

from .models import ScanMode, SyncState
from .storage import StateStorage

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_older_cursor(new: str, old: str) -> bool:
    """True when both cursors are numeric and ``new`` sits before ``old``."""
    if new.isdigit() and old.isdigit():
        return int(new) < int(old)
    return False


class SyncStateStore:
    """Loads the checkpoint lazily and writes it back after every commit."""

    def __init__(self, storage: StateStorage, clock: Callable[[], datetime] = _utcnow) -> None:
        self.storage = storage
        self._clock = clock
        self._lock = threading.Lock()
        self._state: SyncState | None = None

    def get_state(self) -> SyncState:
        with self._lock:
            return self._load()

    def _load(self) -> SyncState:
        # lock held
        if self._state is None:
            self._state = self.storage.load_sync_state() or SyncState()
        return self._state

    def can_perform_incremental_sync(self) -> bool:
        return self.get_state().can_sync_incrementally

    def choose_mode(self, requested: ScanMode = ScanMode.INCREMENTAL) -> ScanMode:
        """Downgrade an incremental request to full when no cursor is stored."""
        if requested is ScanMode.INCREMENTAL and not self.can_perform_incremental_sync():
            return ScanMode.FULL
        return requested

    def mark_full_scan_complete(
        self,
        cursor: str | None,
        processed_ids: Iterable[str],
        subscription_count: int,
        emails_scanned: int,
    ) -> SyncState:
        """Replace the checkpoint after a full scan."""
        with self._lock:
            now = self._clock()
            self._state = SyncState(
                cursor=cursor,
                full_scan_at=now,
                incremental_sync_at=None,
                processed_ids=set(processed_ids),
                last_subscription_count=subscription_count,
                last_emails_scanned=emails_scanned,
            )
            self.storage.save_sync_state(self._state)
            logger.info("full_scan_recorded", cursor=cursor, processed=len(self._state.processed_ids))
            return self._state

    def mark_incremental_sync_complete(
        self,
        cursor: str | None,
        new_ids: Iterable[str],
        subscription_count: int,
        emails_scanned: int,
    ) -> SyncState:
        """Merge newly processed ids and advance the cursor (never backwards)."""
        with self._lock:
            state = self._load()
            if cursor and state.cursor and _is_older_cursor(cursor, state.cursor):
                logger.warning("stale_cursor_ignored", stored=state.cursor, received=cursor)
            elif cursor:
                state.cursor = cursor
            state.processed_ids.update(new_ids)
            state.incremental_sync_at = self._clock()
            state.last_subscription_count = subscription_count
            state.last_emails_scanned = emails_scanned
            self.storage.save_sync_state(state)
            logger.info("incremental_sync_recorded", cursor=state.cursor, processed=len(state.processed_ids))
            return state

    def clear(self) -> None:
        with self._lock:
            self._state = SyncState()
            self.storage.clear_sync_state()

    def last_sync_info(self) -> tuple[datetime, ScanMode] | None:
        """When the last sync happened and what kind it was, ``None`` before any."""
        state = self.get_state()
        if state.incremental_sync_at is not None:
            return state.incremental_sync_at, ScanMode.INCREMENTAL
        if state.full_scan_at is not None:
            return state.full_scan_at, ScanMode.FULL
        return None
