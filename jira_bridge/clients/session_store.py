"""Per-session key-value storage backing the OAuth token lifecycle.

A session lives for ``max_age_seconds`` from its first write, the same span as
the session cookie. Records of an expired session read as absent and are
removed; every write also prunes other expired sessions.
"""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol


class SessionStore(Protocol):
    """Opaque per-user record keyed by a session identifier."""

    def get(self, session_id: str, key: str) -> Optional[Any]:
        ...

    def set(self, session_id: str, key: str, value: Any) -> None:
        ...

    def delete(self, session_id: str, key: str) -> None:
        ...


class InMemorySessionStore:
    """Process-local session storage; contents are lost on restart."""

    def __init__(
        self,
        *,
        max_age_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_age = max_age_seconds
        self._clock = clock
        self._records: Dict[str, Dict[str, str]] = {}
        self._expires_at: Dict[str, float] = {}

    def _drop(self, session_id: str) -> None:
        self._records.pop(session_id, None)
        self._expires_at.pop(session_id, None)

    def _live_records(self, session_id: str) -> Optional[Dict[str, str]]:
        records = self._records.get(session_id)
        if records is None:
            return None
        expires_at = self._expires_at.get(session_id)
        if expires_at is not None and expires_at <= self._clock():
            self._drop(session_id)
            return None
        return records

    def _prune(self) -> None:
        now = self._clock()
        expired = [sid for sid, expires_at in self._expires_at.items() if expires_at <= now]
        for session_id in expired:
            self._drop(session_id)

    def get(self, session_id: str, key: str) -> Optional[Any]:
        records = self._live_records(session_id)
        if not records or key not in records:
            return None
        return json.loads(records[key])

    def set(self, session_id: str, key: str, value: Any) -> None:
        self._prune()
        records = self._records.get(session_id)
        if records is None:
            records = self._records[session_id] = {}
            if self._max_age is not None:
                self._expires_at[session_id] = self._clock() + self._max_age
        # Values are stored as JSON so callers never share mutable state with the store.
        records[key] = json.dumps(value)

    def delete(self, session_id: str, key: str) -> None:
        records = self._records.get(session_id)
        if records is None:
            return
        records.pop(key, None)
        if not records:
            self._drop(session_id)


class SQLiteSessionStore:
    """Session storage in a SQLite table keyed by (session_id, key)."""

    def __init__(
        self,
        db_path: str,
        *,
        max_age_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._max_age = max_age_seconds
        self._clock = clock
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS session_records (
                    session_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    expires_at REAL,
                    PRIMARY KEY (session_id, key)
                )
                """
            )
            columns = {
                row["name"]
                for row in conn.execute("PRAGMA table_info(session_records)")
            }
            if "expires_at" not in columns:
                conn.execute("ALTER TABLE session_records ADD COLUMN expires_at REAL")

    def get(self, session_id: str, key: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT data, expires_at FROM session_records
                WHERE session_id = ? AND key = ?
                """,
                (session_id, key),
            ).fetchone()
            if not row:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= self._clock():
                conn.execute(
                    "DELETE FROM session_records WHERE session_id = ?", (session_id,)
                )
                return None
        return json.loads(row["data"])

    def set(self, session_id: str, key: str, value: Any) -> None:
        if not session_id or not key:
            raise ValueError("Session records require a session id and key")
        now = self._clock()
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM session_records WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )
            existing = conn.execute(
                "SELECT expires_at FROM session_records WHERE session_id = ? LIMIT 1",
                (session_id,),
            ).fetchone()
            if existing is not None:
                expires_at = existing["expires_at"]
            elif self._max_age is not None:
                expires_at = now + self._max_age
            else:
                expires_at = None
            conn.execute(
                """
                INSERT INTO session_records (session_id, key, data, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(session_id, key) DO UPDATE SET data = excluded.data
                """,
                (session_id, key, json.dumps(value), expires_at),
            )

    def delete(self, session_id: str, key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM session_records WHERE session_id = ? AND key = ?",
                (session_id, key),
            )


__all__ = ["InMemorySessionStore", "SQLiteSessionStore", "SessionStore"]
