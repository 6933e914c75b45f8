"""Shared fixtures for tests."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from subscription_scanner.config import DetectionConfig, RateLimitConfig
from subscription_scanner.exceptions import NotFoundError
from subscription_scanner.models import HistoryPage, Message
from subscription_scanner.scanner import build_detection_engine
from subscription_scanner.storage import MemoryStorage


def days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def make_message(
    message_id: str,
    sender: str = "Figma <billing@figmamail.com>",
    subject: str = "",
    snippet: str = "",
    date: datetime | None = None,
    unsubscribe: bool = False,
) -> Message:
    date = date or datetime.now(timezone.utc)
    return Message(
        message_id=message_id,
        thread_id=f"t-{message_id}",
        snippet=snippet,
        subject=subject,
        sender=sender,
        internal_date=str(int(date.timestamp() * 1000)),
        has_unsubscribe_header=unsubscribe,
    )


def figma_receipts(count: int = 6, prefix: str = "figma") -> list[Message]:
    """Monthly Figma receipts, newest one yesterday."""
    return [
        make_message(
            f"{prefix}-{i}",
            subject="Receipt from Figma for your subscription",
            snippet="Professional plan $12.00/mo, billed monthly",
            date=days_ago(1 + 30 * i),
            unsubscribe=True,
        )
        for i in range(count)
    ]


class FakeMailApi:
    """Scripted stand-in for :class:`GmailApi`.

    ``failures`` maps an operation name ("search", "get", "history",
    "profile") to exceptions raised, in order, before calls succeed.
    """

    def __init__(self, messages: list[Message] | None = None, cursor: str | None = "1000") -> None:
        self.messages = {m.message_id: m for m in messages or []}
        self.search_ids = [m.message_id for m in messages or []]
        self.history_pages: list[HistoryPage] = []
        self.profile_cursor = cursor
        self.failures: dict[str, list[Exception]] = {}
        self.calls: Counter = Counter()
        self.queries: list[str] = []
        self.fetched: list[str] = []
        self.history_cursors: list[str] = []
        self._lock = threading.Lock()

    def add_messages(self, messages: list[Message], searchable: bool = True) -> None:
        for m in messages:
            self.messages[m.message_id] = m
            if searchable:
                self.search_ids.append(m.message_id)

    def _maybe_fail(self, op: str) -> None:
        with self._lock:
            self.calls[op] += 1
            queue = self.failures.get(op)
            if queue:
                raise queue.pop(0)

    def search_message_ids(self, query, page_size, page_token=None):
        self._maybe_fail("search")
        self.queries.append(query)
        start = int(page_token or 0)
        ids = self.search_ids[start:start + page_size]
        end = start + page_size
        return ids, (str(end) if end < len(self.search_ids) else None)

    def get_message(self, message_id, format="metadata", metadata_headers=None):
        self._maybe_fail("get")
        if message_id not in self.messages:
            raise NotFoundError(f"{message_id} not found", status=404)
        with self._lock:
            self.fetched.append(message_id)
        return self.messages[message_id]

    def get_changes_since(self, cursor, label_id=None, page_token=None):
        self._maybe_fail("history")
        self.history_cursors.append(cursor)
        if not self.history_pages:
            return HistoryPage(message_ids=[], cursor=self.profile_cursor)
        index = int(page_token or 0)
        has_more = index + 1 < len(self.history_pages)
        return replace(self.history_pages[index], next_page_token=str(index + 1) if has_more else None)

    def get_profile(self):
        self._maybe_fail("profile")
        return self.profile_cursor


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_api() -> FakeMailApi:
    return FakeMailApi()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def make_engine(storage, sleeps):
    """Build a DetectionEngine over a fake API with sleeping recorded, not performed."""

    def factory(api: FakeMailApi, config: DetectionConfig | None = None, rate_config: RateLimitConfig | None = None):
        return build_detection_engine(api, storage, config, rate_config, sleep=sleeps.append)

    return factory
