"""Durable storage for the message cache and the sync checkpoint.

:class:`SqliteStorage` is the on-disk backend; :class:`MemoryStorage` keeps
everything in process and backs tests. Both satisfy :class:`StateStorage`.
An unreadable store is treated as empty, never as an error.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

import structlog

from .constants import STATE_DB_PATH
from .models import CacheEntry, Message, SyncState

logger = structlog.get_logger()

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    message_id TEXT PRIMARY KEY,
    thread_id TEXT,
    snippet TEXT,
    subject TEXT,
    sender TEXT,
    internal_date TEXT,
    has_unsubscribe_header INTEGER,
    cached_at TEXT
);

CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    cursor TEXT,
    full_scan_at TEXT,
    incremental_sync_at TEXT,
    processed_ids_json TEXT,
    last_subscription_count INTEGER,
    last_emails_scanned INTEGER
);
"""

_IN_CLAUSE_CHUNK = 500


class StateStorage(Protocol):
    def load_messages(self, message_ids: Iterable[str]) -> dict[str, CacheEntry]: ...

    def save_messages(self, entries: Iterable[CacheEntry]) -> None: ...

    def message_ids(self) -> set[str]: ...

    def prune_messages(self, cutoff: datetime) -> int: ...

    def clear_messages(self) -> None: ...

    def message_stats(self) -> dict: ...

    def load_sync_state(self) -> SyncState | None: ...

    def save_sync_state(self, state: SyncState) -> None: ...

    def clear_sync_state(self) -> None: ...

    def close(self) -> None: ...


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _copy_state(state: SyncState) -> SyncState:
    return replace(state, processed_ids=set(state.processed_ids))


class SqliteStorage:
    """SQLite-backed storage, shared by the message cache and the sync state."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path or STATE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = self._open()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(_CREATE_TABLES_SQL)
        conn.execute("SELECT COUNT(*) FROM messages").fetchone()
        return conn

    def _open(self) -> sqlite3.Connection:
        try:
            return self._connect()
        except sqlite3.DatabaseError as exc:
            logger.warning("state_db_unreadable", path=str(self.db_path), error=str(exc))
            self.db_path.unlink(missing_ok=True)
            return self._connect()

    # --- messages ---

    def load_messages(self, message_ids: Iterable[str]) -> dict[str, CacheEntry]:
        ids = list(message_ids)
        found: dict[str, CacheEntry] = {}
        with self._lock:
            for start in range(0, len(ids), _IN_CLAUSE_CHUNK):
                chunk = ids[start:start + _IN_CLAUSE_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                try:
                    rows = self._conn.execute(
                        f"SELECT * FROM messages WHERE message_id IN ({placeholders})", chunk
                    ).fetchall()
                except sqlite3.DatabaseError as exc:
                    logger.warning("message_cache_read_failed", error=str(exc))
                    return {}
                for row in rows:
                    entry = self._row_to_entry(row)
                    if entry is not None:
                        found[entry.message.message_id] = entry
        return found

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CacheEntry | None:
        try:
            cached_at = _from_iso(row["cached_at"])
        except ValueError:
            return None
        if cached_at is None:
            return None
        message = Message(
            message_id=row["message_id"],
            thread_id=row["thread_id"] or "",
            snippet=row["snippet"] or "",
            subject=row["subject"] or "",
            sender=row["sender"] or "",
            internal_date=row["internal_date"],
            has_unsubscribe_header=bool(row["has_unsubscribe_header"]),
        )
        return CacheEntry(message=message, cached_at=cached_at)

    def save_messages(self, entries: Iterable[CacheEntry]) -> None:
        rows = [
            (
                e.message.message_id,
                e.message.thread_id,
                e.message.snippet,
                e.message.subject,
                e.message.sender,
                e.message.internal_date,
                int(e.message.has_unsubscribe_header),
                _to_iso(e.cached_at),
            )
            for e in entries
        ]
        if not rows:
            return
        with self._lock, self._conn:
            self._conn.executemany(
                "INSERT OR REPLACE INTO messages (message_id, thread_id, snippet, subject, "
                "sender, internal_date, has_unsubscribe_header, cached_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )

    def message_ids(self) -> set[str]:
        with self._lock:
            rows = self._conn.execute("SELECT message_id FROM messages").fetchall()
        return {r["message_id"] for r in rows}

    def prune_messages(self, cutoff: datetime) -> int:
        with self._lock:
            rows = self._conn.execute("SELECT message_id, cached_at FROM messages").fetchall()
            stale = []
            for r in rows:
                try:
                    cached_at = _from_iso(r["cached_at"])
                except ValueError:
                    cached_at = None
                if cached_at is None or cached_at < cutoff:
                    stale.append((r["message_id"],))
            if stale:
                with self._conn:
                    self._conn.executemany("DELETE FROM messages WHERE message_id = ?", stale)
        return len(stale)

    def clear_messages(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM messages")

    def message_stats(self) -> dict:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS c, MIN(cached_at) AS oldest, MAX(cached_at) AS newest FROM messages"
            ).fetchone()
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        return {
            "message_count": row["c"],
            "oldest_entry": row["oldest"],
            "newest_entry": row["newest"],
            "db_file_size": file_size,
        }

    # --- sync state ---

    def load_sync_state(self) -> SyncState | None:
        with self._lock:
            try:
                row = self._conn.execute("SELECT * FROM sync_state WHERE id = 1").fetchone()
            except sqlite3.DatabaseError as exc:
                logger.warning("sync_state_read_failed", error=str(exc))
                return None
        if row is None:
            return None
        try:
            return SyncState(
                cursor=row["cursor"],
                full_scan_at=_from_iso(row["full_scan_at"]),
                incremental_sync_at=_from_iso(row["incremental_sync_at"]),
                processed_ids=set(json.loads(row["processed_ids_json"] or "[]")),
                last_subscription_count=row["last_subscription_count"] or 0,
                last_emails_scanned=row["last_emails_scanned"] or 0,
            )
        except (ValueError, TypeError) as exc:
            logger.warning("sync_state_corrupt", error=str(exc))
            return None

    def save_sync_state(self, state: SyncState) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (id, cursor, full_scan_at, incremental_sync_at, "
                "processed_ids_json, last_subscription_count, last_emails_scanned) "
                "VALUES (1, ?, ?, ?, ?, ?, ?)",
                (
                    state.cursor,
                    _to_iso(state.full_scan_at),
                    _to_iso(state.incremental_sync_at),
                    json.dumps(sorted(state.processed_ids)),
                    state.last_subscription_count,
                    state.last_emails_scanned,
                ),
            )

    def clear_sync_state(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM sync_state")

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> SqliteStorage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()


class MemoryStorage:
    """In-process storage with the same contract as :class:`SqliteStorage`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: dict[str, CacheEntry] = {}
        self._state: SyncState | None = None

    def load_messages(self, message_ids: Iterable[str]) -> dict[str, CacheEntry]:
        with self._lock:
            return {mid: self._messages[mid] for mid in message_ids if mid in self._messages}

    def save_messages(self, entries: Iterable[CacheEntry]) -> None:
        with self._lock:
            for e in entries:
                self._messages[e.message.message_id] = e

    def message_ids(self) -> set[str]:
        with self._lock:
            return set(self._messages)

    def prune_messages(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [mid for mid, e in self._messages.items() if e.cached_at < cutoff]
            for mid in stale:
                del self._messages[mid]
        return len(stale)

    def clear_messages(self) -> None:
        with self._lock:
            self._messages.clear()

    def message_stats(self) -> dict:
        with self._lock:
            dates = [e.cached_at for e in self._messages.values()]
        return {
            "message_count": len(dates),
            "oldest_entry": _to_iso(min(dates)) if dates else None,
            "newest_entry": _to_iso(max(dates)) if dates else None,
            "db_file_size": 0,
        }

    def load_sync_state(self) -> SyncState | None:
        with self._lock:
            return _copy_state(self._state) if self._state is not None else None

    def save_sync_state(self, state: SyncState) -> None:
        with self._lock:
            self._state = _copy_state(state)

    def clear_sync_state(self) -> None:
        with self._lock:
            self._state = None

    def close(self) -> None:
        pass
