"""Per-learner progress storage with atomic per-learner updates."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from .models import UserProgress

SCHEMA_VERSION = 1

Transition = Callable[[UserProgress], UserProgress]


class ProgressStore:
    """Key-partitioned learner progress.

    `update` must apply a transition atomically for one learner: concurrent updates of
    the same learner are serialized, updates of different learners may interleave.
    """

    def get(self, user_id: str) -> UserProgress:
        """Return progress for `user_id`, creating the default record if unseen."""
        return self.update(user_id, lambda progress: progress)

    def find(self, user_id: str) -> UserProgress | None:
        """Return progress for `user_id` without creating a record."""
        raise NotImplementedError

    def update(self, user_id: str, transition: Transition) -> UserProgress:
        """Apply `transition` to the learner's record and return the stored result."""
        raise NotImplementedError

    def close(self) -> None:
        """Release store resources."""


class MemoryProgressStore(ProgressStore):
    """In-memory store with one lock per learner."""

    def __init__(self) -> None:
        self._records: dict[str, UserProgress] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def find(self, user_id: str) -> UserProgress | None:
        return self._records.get(user_id)

    def update(self, user_id: str, transition: Transition) -> UserProgress:
        with self._lock_for(user_id):
            current = self._records.get(user_id) or UserProgress(user_id=user_id)
            updated = transition(current)
            self._records[user_id] = updated
            return updated


class SqliteProgressStore(ProgressStore):
    """SQLite persistence for learner progress."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create learner and completed-lesson tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS learners (
                    user_id TEXT PRIMARY KEY,
                    current_lesson INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS completed_lessons (
                    user_id TEXT NOT NULL,
                    lesson_id INTEGER NOT NULL,
                    completed_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, lesson_id)
                )
                """)

    def _load(self, user_id: str) -> UserProgress | None:
        row = self._conn.execute(
            "SELECT current_lesson FROM learners WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        rows = self._conn.execute(
            "SELECT lesson_id FROM completed_lessons WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return UserProgress(
            user_id=user_id,
            current_lesson=int(row["current_lesson"]),
            completed_lessons=frozenset(int(item["lesson_id"]) for item in rows),
        )

    def find(self, user_id: str) -> UserProgress | None:
        with self._lock:
            return self._load(user_id)

    def update(self, user_id: str, transition: Transition) -> UserProgress:
        now = datetime.now(UTC).isoformat()
        with self._lock, self._conn:
            current = self._load(user_id) or UserProgress(user_id=user_id)
            updated = transition(current)
            self._conn.execute(
                """
                INSERT INTO learners (user_id, current_lesson, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET current_lesson = excluded.current_lesson
                """,
                (user_id, updated.current_lesson, now),
            )
            added = sorted(updated.completed_lessons - current.completed_lessons)
            self._conn.executemany(
                "INSERT OR IGNORE INTO completed_lessons (user_id, lesson_id, completed_at) VALUES (?, ?, ?)",
                [(user_id, lesson_id, now) for lesson_id in added],
            )
            return updated

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass
