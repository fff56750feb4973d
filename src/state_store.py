import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List


def _get_db_path() -> str:
    """Read the DB path from the environment on every call so tests can monkeypatch it."""
    return os.getenv("TOLLCLAIM_STATE_DB", "tollclaim_state.db")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _conn():
    con = sqlite3.connect(_get_db_path())
    con.execute("PRAGMA journal_mode=WAL;")
    try:
        yield con
        con.commit()
    finally:
        con.close()


def init_db():
    with _conn() as con:
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS submitted_claims (
              match_ref TEXT PRIMARY KEY,
              meta_json TEXT,
              submitted_at TEXT
            );
            """
        )
        # append-only: rows are never updated or deleted
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS audit_log (
              ts TEXT,
              level TEXT,
              actor TEXT,
              action TEXT,
              target_ids TEXT,
              result TEXT,
              error TEXT
            );
            """
        )


def is_submitted(match_ref: str) -> bool:
    with _conn() as con:
        cur = con.execute("SELECT 1 FROM submitted_claims WHERE match_ref=?", (match_ref,))
        return cur.fetchone() is not None


def mark_submitted(match_ref: str, meta: Dict):
    with _conn() as con:
        con.execute(
            "INSERT OR REPLACE INTO submitted_claims(match_ref, meta_json, submitted_at) VALUES (?,?,?)",
            (match_ref, json.dumps(meta, ensure_ascii=False), _now()),
        )


def write_audit(level: str, actor: str, action: str, target_ids: list, result: str, error: str | None = None):
    with _conn() as con:
        con.execute(
            "INSERT INTO audit_log(ts, level, actor, action, target_ids, result, error) VALUES (?,?,?,?,?,?,?)",
            (_now(), level, actor, action, json.dumps(target_ids), result, error),
        )


def read_audit(action: str | None = None) -> List[Dict]:
    query = "SELECT ts, level, actor, action, target_ids, result, error FROM audit_log"
    params: tuple = ()
    if action:
        query += " WHERE action=?"
        params = (action,)
    query += " ORDER BY rowid"
    with _conn() as con:
        rows = con.execute(query, params).fetchall()
    return [
        {
            "ts": ts,
            "level": level,
            "actor": actor,
            "action": act,
            "target_ids": json.loads(target_ids or "[]"),
            "result": result,
            "error": error,
        }
        for ts, level, actor, act, target_ids, result, error in rows
    ]
