"""Tests for the two-tier message cache."""

from datetime import datetime, timedelta, timezone

from conftest import make_message

from subscription_scanner.cache import MessageCache
from subscription_scanner.storage import MemoryStorage, SqliteStorage


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def test_set_and_get():
    cache = MessageCache(MemoryStorage())
    cache.set(make_message("m1", subject="Receipt"))
    assert cache.get("m1").subject == "Receipt"
    assert cache.get("nope") is None
    assert cache.contains("m1")


def test_get_batch_splits_hits_and_misses():
    """Missing ids come back in input order."""
    cache = MessageCache(MemoryStorage())
    cache.set_batch([make_message("b"), make_message("d")])
    cached, missing = cache.get_batch(["a", "b", "c", "d", "e"])
    assert set(cached) == {"b", "d"}
    assert missing == ["a", "c", "e"]


def test_storage_hit_is_promoted_to_memory():
    storage = MemoryStorage()
    MessageCache(storage).set(make_message("m1"))

    fresh = MessageCache(storage)
    assert fresh.stats()["memory_count"] == 0
    assert fresh.get("m1") is not None
    assert fresh.stats()["memory_count"] == 1


def test_memory_tier_is_bounded():
    storage = MemoryStorage()
    cache = MessageCache(storage, memory_limit=3)
    cache.set_batch([make_message(f"m{i}") for i in range(5)])
    assert cache.stats()["memory_count"] == 3
    # evicted entries are still served from storage
    assert cache.get("m0") is not None


def test_expired_entries_read_as_misses():
    clock = FakeClock()
    cache = MessageCache(MemoryStorage(), max_age_days=30, clock=clock)
    cache.set(make_message("m1"))
    clock.now += timedelta(days=31)
    cached, missing = cache.get_batch(["m1"])
    assert cached == {}
    assert missing == ["m1"]


def test_prune_expired():
    clock = FakeClock()
    storage = MemoryStorage()
    cache = MessageCache(storage, clock=clock)
    cache.set(make_message("old"))
    clock.now += timedelta(days=20)
    cache.set(make_message("new"))
    clock.now += timedelta(days=15)

    assert cache.prune_expired() == 1
    assert cache.all_cached_ids() == {"new"}
    assert cache.stats()["memory_count"] == 1


def test_clear_empties_both_tiers():
    storage = MemoryStorage()
    cache = MessageCache(storage)
    cache.set_batch([make_message("a"), make_message("b")])
    cache.clear()
    assert cache.all_cached_ids() == set()
    assert storage.message_ids() == set()


def test_all_cached_ids_unions_tiers():
    storage = MemoryStorage()
    MessageCache(storage).set(make_message("stored"))
    cache = MessageCache(storage)
    cache.set(make_message("both"))
    assert cache.all_cached_ids() == {"stored", "both"}


def test_sqlite_backed_cache(tmp_path):
    with SqliteStorage(tmp_path / "state.db") as storage:
        cache = MessageCache(storage)
        cache.set(make_message("m1", subject="Your Netflix receipt", unsubscribe=True))

    with SqliteStorage(tmp_path / "state.db") as storage:
        cache = MessageCache(storage)
        msg = cache.get("m1")
        stats = cache.stats()

    assert msg.subject == "Your Netflix receipt"
    assert msg.has_unsubscribe_header
    assert stats["message_count"] == 1
    assert isinstance(datetime.fromisoformat(stats["newest_entry"]), datetime)
