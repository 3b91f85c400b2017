from __future__ import annotations

import hashlib
import secrets
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

from redact_pro.config import settings

_DB_PATH = settings.api_db_path
KEY_PREFIX = "rp_"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS api_keys (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        name         TEXT NOT NULL,
        key_hash     TEXT UNIQUE NOT NULL,
        key_prefix   TEXT NOT NULL,
        created_at   TEXT DEFAULT (datetime('now')),
        last_used_at TEXT,
        is_active    INTEGER NOT NULL DEFAULT 1
    );
"""


@dataclass(frozen=True)
class ApiKeyRecord:
    id: int
    name: str
    key_prefix: str
    created_at: str
    last_used_at: str | None
    is_active: bool


@contextmanager
def _conn() -> Generator[sqlite3.Connection, None, None]:
    con = sqlite3.connect(_DB_PATH)
    con.row_factory = sqlite3.Row
    try:
        yield con
        con.commit()
    finally:
        con.close()


def _digest(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def init_db() -> None:
    with _conn() as con:
        con.executescript(_SCHEMA)


def create_api_key(name: str) -> str:
    """Store a new key for name and return it; only its hash is kept."""
    raw = KEY_PREFIX + secrets.token_urlsafe(32)
    with _conn() as con:
        con.execute(
            "INSERT INTO api_keys (name, key_hash, key_prefix) VALUES (?, ?, ?)",
            (name, _digest(raw), raw[: len(KEY_PREFIX) + 6]),
        )
    return raw


def list_api_keys(include_revoked: bool = True) -> list[ApiKeyRecord]:
    query = "SELECT id, name, key_prefix, created_at, last_used_at, is_active FROM api_keys"
    if not include_revoked:
        query += " WHERE is_active = 1"
    with _conn() as con:
        rows = con.execute(query + " ORDER BY id DESC").fetchall()
    return [
        ApiKeyRecord(
            id=r["id"],
            name=r["name"],
            key_prefix=r["key_prefix"],
            created_at=r["created_at"],
            last_used_at=r["last_used_at"],
            is_active=bool(r["is_active"]),
        )
        for r in rows
    ]


def revoke_api_key(key_id: int) -> bool:
    with _conn() as con:
        cur = con.execute(
            "UPDATE api_keys SET is_active = 0 WHERE id = ? AND is_active = 1", (key_id,)
        )
    return cur.rowcount > 0


def check_api_key(raw_key: str) -> bool:
    """True for an active key; a hit stamps last_used_at."""
    if not raw_key.startswith(KEY_PREFIX):
        return False
    with _conn() as con:
        cur = con.execute(
            "UPDATE api_keys SET last_used_at = datetime('now') WHERE key_hash = ? AND is_active = 1",
            (_digest(raw_key),),
        )
    return cur.rowcount > 0
