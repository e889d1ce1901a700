"""SQLite-backed progress store for per-document progress, reading sessions and completed documents."""

import json
import sqlite3
import threading
import logging
from datetime import datetime, timezone
from pathlib import Path

from .base import ProgressStore
from .records import CompletedDocument, ReadingProgress, ReadingSession

logger = logging.getLogger(__name__)


def to_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SessionStore(ProgressStore):
    """Persistent progress storage backed by SQLite."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS reading_progress (
        document_key        TEXT PRIMARY KEY,
        current_unit_index  INTEGER NOT NULL,
        completed_units     TEXT NOT NULL DEFAULT '[]',
        total_units         INTEGER NOT NULL,
        last_updated        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS reading_sessions (
        session_id              TEXT PRIMARY KEY,
        document_key            TEXT NOT NULL,
        total_units             INTEGER NOT NULL,
        completed_units         INTEGER NOT NULL,
        total_words             INTEGER NOT NULL,
        reading_time_seconds    INTEGER NOT NULL,
        completion_percentage   INTEGER NOT NULL,
        captured_at             TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS completed_documents (
        document_key            TEXT PRIMARY KEY,
        completion_percentage   INTEGER NOT NULL,
        total_words             INTEGER NOT NULL,
        reading_time_seconds    INTEGER NOT NULL,
        completed_at            TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_doc ON reading_sessions(document_key);
    CREATE INDEX IF NOT EXISTS idx_sessions_time ON reading_sessions(captured_at);
    """

    def __init__(self, db_path: str | Path = "data/progress.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(self.SCHEMA)
        self._conn.commit()
        logger.info("Progress store opened: %s", self.db_path)

    def close(self) -> None:
        self._conn.close()

    # ── Progress ─────────────────────────────────────────────────────────

    def save_progress(self, progress: ReadingProgress) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT INTO reading_progress
                       (document_key, current_unit_index, completed_units, total_units, last_updated)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(document_key) DO UPDATE SET
                       current_unit_index = excluded.current_unit_index,
                       completed_units = excluded.completed_units,
                       total_units = excluded.total_units,
                       last_updated = excluded.last_updated""",
                (
                    progress.document_key,
                    progress.current_unit_index,
                    json.dumps(sorted(progress.completed_unit_indexes)),
                    progress.total_units,
                    to_timestamp(progress.last_updated),
                ),
            )
            self._conn.commit()

    def load_progress(self, document_key: str) -> ReadingProgress | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM reading_progress WHERE document_key = ?", (document_key,)
            ).fetchone()
        if row is None:
            return None
        return ReadingProgress(
            document_key=row["document_key"],
            current_unit_index=row["current_unit_index"],
            completed_unit_indexes=set(json.loads(row["completed_units"])),
            total_units=row["total_units"],
            last_updated=from_timestamp(row["last_updated"]),
        )

    # ── Sessions ─────────────────────────────────────────────────────────

    def save_session(self, session: ReadingSession) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO reading_sessions
                       (session_id, document_key, total_units, completed_units, total_words,
                        reading_time_seconds, completion_percentage, captured_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    session.session_id,
                    session.document_key,
                    session.total_units,
                    session.completed_units,
                    session.total_words,
                    session.reading_time_seconds,
                    session.completion_percentage,
                    to_timestamp(session.captured_at),
                ),
            )
            self._conn.commit()

    def load_sessions(self, document_key: str | None = None, limit: int = 50) -> list[ReadingSession]:
        with self._lock:
            if document_key is None:
                rows = self._conn.execute(
                    "SELECT * FROM reading_sessions ORDER BY captured_at DESC LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM reading_sessions WHERE document_key = ? ORDER BY captured_at DESC LIMIT ?",
                    (document_key, limit),
                ).fetchall()
        return [ReadingSession(
                    session_id=r["session_id"],
                    document_key=r["document_key"],
                    total_units=r["total_units"],
                    completed_units=r["completed_units"],
                    total_words=r["total_words"],
                    reading_time_seconds=r["reading_time_seconds"],
                    completion_percentage=r["completion_percentage"],
                    captured_at=from_timestamp(r["captured_at"]),
                ) for r in rows]

    # ── Completed documents ──────────────────────────────────────────────

    def save_completed(self, completed: CompletedDocument) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO completed_documents
                       (document_key, completion_percentage, total_words, reading_time_seconds, completed_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    completed.document_key,
                    completed.completion_percentage,
                    completed.total_words,
                    completed.reading_time_seconds,
                    to_timestamp(completed.completed_at),
                ),
            )
            self._conn.commit()

    def load_completed(self) -> list[CompletedDocument]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM completed_documents ORDER BY completed_at DESC"
            ).fetchall()
        return [CompletedDocument(
                    document_key=r["document_key"],
                    completion_percentage=r["completion_percentage"],
                    total_words=r["total_words"],
                    reading_time_seconds=r["reading_time_seconds"],
                    completed_at=from_timestamp(r["completed_at"]),
                ) for r in rows]

    def is_completed(self, document_key: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM completed_documents WHERE document_key = ?", (document_key,)
            ).fetchone()
        return row is not None
