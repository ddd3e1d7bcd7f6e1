from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from jira_bridge.clients.session_store import InMemorySessionStore, SQLiteSessionStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemorySessionStore()
    return SQLiteSessionStore(str(tmp_path / "sessions" / "store.db"))


def test_get_missing_key_returns_none(store) -> None:
    assert store.get("session-1", "jira_oauth") is None


def test_set_get_delete(store) -> None:
    record = {"access_token_cipher": "aa:bb:cc", "refresh_token_cipher": None, "expires_at": 1}

    store.set("session-1", "jira_oauth", record)
    assert store.get("session-1", "jira_oauth") == record

    store.delete("session-1", "jira_oauth")
    assert store.get("session-1", "jira_oauth") is None


def test_set_overwrites(store) -> None:
    store.set("session-1", "jira_oauth_state", {"value": "a", "issued_at": 1})
    store.set("session-1", "jira_oauth_state", {"value": "b", "issued_at": 2})

    assert store.get("session-1", "jira_oauth_state") == {"value": "b", "issued_at": 2}


def test_sessions_are_isolated(store) -> None:
    store.set("session-1", "jira_oauth", {"n": 1})
    store.set("session-2", "jira_oauth", {"n": 2})
    store.delete("session-1", "jira_oauth")

    assert store.get("session-1", "jira_oauth") is None
    assert store.get("session-2", "jira_oauth") == {"n": 2}


def test_delete_missing_key_is_noop(store) -> None:
    store.delete("session-1", "nothing-here")


def test_returned_values_are_copies(store) -> None:
    store.set("session-1", "jira_oauth", {"n": 1})
    value = store.get("session-1", "jira_oauth")
    value["n"] = 99

    assert store.get("session-1", "jira_oauth") == {"n": 1}


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    db_path = str(tmp_path / "store.db")
    SQLiteSessionStore(db_path).set("session-1", "jira_oauth", {"n": 1})

    assert SQLiteSessionStore(db_path).get("session-1", "jira_oauth") == {"n": 1}


def test_sqlite_store_requires_ids(tmp_path: Path) -> None:
    store = SQLiteSessionStore(str(tmp_path / "store.db"))

    with pytest.raises(ValueError):
        store.set("", "jira_oauth", {})


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(params=["memory", "sqlite"])
def expiring_store(request, tmp_path: Path):
    clock = FakeClock()
    if request.param == "memory":
        return InMemorySessionStore(max_age_seconds=60, clock=clock), clock
    return (
        SQLiteSessionStore(str(tmp_path / "store.db"), max_age_seconds=60, clock=clock),
        clock,
    )


def test_records_expire_with_the_session(expiring_store) -> None:
    store, clock = expiring_store
    store.set("session-1", "jira_oauth", {"n": 1})

    clock.now += 59
    assert store.get("session-1", "jira_oauth") == {"n": 1}

    clock.now += 1
    assert store.get("session-1", "jira_oauth") is None


def test_later_writes_do_not_extend_the_session(expiring_store) -> None:
    store, clock = expiring_store
    store.set("session-1", "jira_oauth_state", {"value": "s", "issued_at": 1})
    clock.now += 45
    store.set("session-1", "jira_oauth", {"n": 1})

    clock.now += 15
    assert store.get("session-1", "jira_oauth") is None
    assert store.get("session-1", "jira_oauth_state") is None


def test_expired_session_id_starts_empty_when_reused(expiring_store) -> None:
    store, clock = expiring_store
    store.set("session-1", "jira_oauth", {"n": 1})
    clock.now += 120

    store.set("session-1", "jira_oauth_state", {"value": "s", "issued_at": 2})

    assert store.get("session-1", "jira_oauth") is None
    clock.now += 59
    assert store.get("session-1", "jira_oauth_state") == {"value": "s", "issued_at": 2}


def test_writes_prune_abandoned_sessions(expiring_store) -> None:
    store, clock = expiring_store
    store.set("abandoned", "jira_oauth", {"n": 1})
    clock.now += 61

    store.set("active", "jira_oauth", {"n": 2})

    if isinstance(store, InMemorySessionStore):
        assert "abandoned" not in store._records
    else:
        with store._connect() as conn:
            rows = conn.execute(
                "SELECT session_id FROM session_records WHERE session_id = 'abandoned'"
            ).fetchall()
        assert rows == []
    assert store.get("active", "jira_oauth") == {"n": 2}


def test_sqlite_store_adds_expiry_column_to_existing_table(tmp_path: Path) -> None:
    db_path = tmp_path / "legacy.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE session_records (
                session_id TEXT NOT NULL,
                key TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (session_id, key)
            )
            """
        )
        conn.execute(
            "INSERT INTO session_records VALUES ('session-1', 'jira_oauth', '{\"n\": 1}')"
        )

    store = SQLiteSessionStore(str(db_path), max_age_seconds=60)

    assert store.get("session-1", "jira_oauth") == {"n": 1}
