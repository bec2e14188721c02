import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .sessions import PaidSet, SessionStore


# SQLite-backed store for paid segments, keyed by session id
class SqliteSessionStore(SessionStore):
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create the database and schema if it does not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS paid_segments (
                    session_id TEXT NOT NULL,
                    segment_id TEXT NOT NULL,
                    paid_at TEXT NOT NULL,
                    PRIMARY KEY (session_id, segment_id)
                );
                """
            )
            conn.commit()

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with row access enabled."""
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def get_or_create(self, session_id: str) -> PaidSet:
        # the sessions row is written with the first paid segment
        return SqlitePaidSet(self, session_id)

    def record_paid(self, session_id: str, segment_id: str) -> bool:
        """Persist a paid segment. Returns False if it was already there."""
        paid_at = _now()
        with self._write_lock, self.get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sessions (session_id, created_at) VALUES (?, ?);",
                (session_id, paid_at),
            )
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO paid_segments (session_id, segment_id, paid_at)
                VALUES (:session_id, :segment_id, :paid_at);
                """,
                {
                    "session_id": session_id,
                    "segment_id": segment_id,
                    "paid_at": paid_at,
                },
            )
            conn.commit()
            return cursor.rowcount == 1

    def is_paid(self, session_id: str, segment_id: str) -> bool:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM paid_segments WHERE session_id = ? AND segment_id = ?;",
                (session_id, segment_id),
            ).fetchone()
            return row is not None


class SqlitePaidSet(PaidSet):
    def __init__(self, store: SqliteSessionStore, session_id: str):
        self._store = store
        self.session_id = session_id

    def add(self, segment_id: str) -> bool:
        return self._store.record_paid(self.session_id, segment_id)

    def contains(self, segment_id: str) -> bool:
        return self._store.is_paid(self.session_id, segment_id)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
