"""Two-tier message cache: a bounded in-memory LRU over durable storage."""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import structlog

from .constants import CACHE_MAX_AGE_DAYS, MEMORY_CACHE_LIMIT
from .models import CacheEntry, Message
from .storage import StateStorage

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageCache:
    """Message metadata keyed by message id.

    Reads check memory first, then storage; a storage hit is promoted into
    memory. Entries older than ``max_age_days`` read as misses.
    """

    def __init__(
        self,
        storage: StateStorage,
        memory_limit: int = MEMORY_CACHE_LIMIT,
        max_age_days: int = CACHE_MAX_AGE_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.memory_limit = memory_limit
        self.max_age = timedelta(days=max_age_days)
        self._clock = clock
        self._lock = threading.Lock()
        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.cached_at > self.max_age

    def _remember(self, entry: CacheEntry) -> None:
        # lock held
        mid = entry.message.message_id
        self._memory[mid] = entry
        self._memory.move_to_end(mid)
        while len(self._memory) > self.memory_limit:
            self._memory.popitem(last=False)

    def get(self, message_id: str) -> Message | None:
        cached, _ = self.get_batch([message_id])
        return cached.get(message_id)

    def set(self, message: Message) -> None:
        self.set_batch([message])

    def get_batch(self, message_ids: Iterable[str]) -> tuple[dict[str, Message], list[str]]:
        """Split ids into ``(cached messages by id, missing ids)``.

        Missing ids keep their input order.
        """
        ids = list(message_ids)
        cached: dict[str, Message] = {}
        unresolved: list[str] = []

        with self._lock:
            for mid in ids:
                entry = self._memory.get(mid)
                if entry is None:
                    unresolved.append(mid)
                elif self._is_expired(entry):
                    del self._memory[mid]
                    unresolved.append(mid)
                else:
                    self._memory.move_to_end(mid)
                    cached[mid] = entry.message

        if unresolved:
            stored = self.storage.load_messages(unresolved)
            with self._lock:
                for mid, entry in stored.items():
                    if not self._is_expired(entry):
                        self._remember(entry)
                        cached[mid] = entry.message

        missing = [mid for mid in ids if mid not in cached]
        logger.debug("cache_lookup", hits=len(cached), misses=len(missing))
        return cached, missing

    def set_batch(self, messages: Iterable[Message]) -> None:
        now = self._clock()
        entries = [CacheEntry(message=m, cached_at=now) for m in messages]
        if not entries:
            return
        with self._lock:
            for entry in entries:
                self._remember(entry)
        self.storage.save_messages(entries)

    def contains(self, message_id: str) -> bool:
        return self.get(message_id) is not None

    def all_cached_ids(self) -> set[str]:
        with self._lock:
            ids = set(self._memory)
        return ids | self.storage.message_ids()

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
        self.storage.clear_messages()

    def prune_expired(self) -> int:
        """Drop expired entries from both tiers; returns how many storage rows went."""
        cutoff = self._clock() - self.max_age
        with self._lock:
            for mid in [m for m, e in self._memory.items() if e.cached_at < cutoff]:
                del self._memory[mid]
        removed = self.storage.prune_messages(cutoff)
        if removed:
            logger.info("cache_pruned", removed=removed)
        return removed

    def stats(self) -> dict:
        stats = self.storage.message_stats()
        with self._lock:
            stats["memory_count"] = len(self._memory)
        return stats
