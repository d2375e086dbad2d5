import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS competency_records (
              track_id    TEXT PRIMARY KEY,
              player_id   TEXT NOT NULL,
              payload     TEXT NOT NULL,
              updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_competency_records_player
              ON competency_records(player_id);

            CREATE TABLE IF NOT EXISTS session_scores (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id     TEXT NOT NULL,
              mode        TEXT NOT NULL,
              level       TEXT NOT NULL,
              instrument  TEXT NOT NULL,
              key         TEXT NOT NULL,
              payload     TEXT NOT NULL,
              forwarded   INTEGER NOT NULL DEFAULT 0,
              created_at  TIMESTAMP NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_session_scores_user
              ON session_scores(user_id, created_at);
            """
        )
        con.commit()


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def _utc_text(value: Optional[datetime] = None) -> str:
    moment = value or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


# -------------- competency records --------------
def get_competency_payload(track_id: str) -> Optional[str]:
    """Return the stored JSON payload for ``track_id`` or ``None``."""
    rows = _query("SELECT payload FROM competency_records WHERE track_id = ?", [track_id])
    if not rows:
        return None
    return rows[0]["payload"]


def upsert_competency_payload(track_id: str, player_id: str, payload: str) -> None:
    _exec(
        """
        INSERT INTO competency_records (track_id, player_id, payload, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(track_id) DO UPDATE SET
            payload = excluded.payload,
            updated_at = excluded.updated_at
        """,
        [track_id, player_id, payload, _utc_text()],
    )


# -------------- session scores --------------
def insert_session_score(payload: Dict[str, Any], created_at: Optional[datetime] = None) -> int:
    cur = _exec(
        """
        INSERT INTO session_scores (user_id, mode, level, instrument, key, payload, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            payload["userId"],
            payload["mode"],
            payload["level"],
            payload["instrument"],
            payload["key"],
            json_dumps(payload),
            _utc_text(created_at),
        ),
    )
    return int(cur.lastrowid)


def mark_session_score_forwarded(score_id: int) -> None:
    _exec("UPDATE session_scores SET forwarded = 1 WHERE id = ?", [score_id])


def list_session_scores(user_id: str, limit: int = 100) -> list[Dict[str, Any]]:
    rows = _query(
        """
        SELECT id, payload, forwarded, created_at FROM session_scores
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        [user_id, limit],
    )
    results = []
    for row in rows:
        try:
            payload = json.loads(row["payload"])
        except json.JSONDecodeError:
            continue
        payload["id"] = row["id"]
        payload["forwarded"] = bool(row["forwarded"])
        results.append(payload)
    return results


def list_unforwarded_session_scores(limit: int = 100) -> list[tuple[int, Dict[str, Any]]]:
    rows = _query(
        "SELECT id, payload FROM session_scores WHERE forwarded = 0 ORDER BY id LIMIT ?",
        [limit],
    )
    pending = []
    for row in rows:
        try:
            pending.append((row["id"], json.loads(row["payload"])))
        except json.JSONDecodeError:
            continue
    return pending
