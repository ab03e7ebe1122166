"""SQLite helpers for the review scraper.

This module defines the project database path, connection helper, schema
initialisation, the key-value table behind the durable storage tier, and the
export history written on completion.
"""
from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Iterable, List, Optional

from . import config

DB_PATH: Path = config.DB_PATH


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing and ``check_same_thread`` is
    disabled so the background writer and the Flask threads can share the
    file. Callers must manage concurrency at a higher layer.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema() -> None:
    """Create the tables if they do not yet exist.

    Safe to call multiple times; each statement uses ``IF NOT EXISTS``.
    """

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key         TEXT PRIMARY KEY,
            value       TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS exports (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            finished_at   TEXT NOT NULL,
            record_count  INTEGER NOT NULL,
            file_path     TEXT,
            kind          TEXT NOT NULL
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_exports_finished_at
            ON exports(finished_at DESC);
        """,
    )

    conn = get_connection()
    with conn:
        for statement in statements:
            conn.execute(statement)
    conn.close()


def _utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def kv_get(key: str) -> Optional[str]:
    """Return the stored value for ``key`` or ``None``."""

    conn = get_connection()
    try:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    finally:
        conn.close()
    return str(row["value"]) if row else None


def kv_set(key: str, value: str) -> None:
    """Insert or replace ``key``."""

    conn = get_connection()
    try:
        with conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, _utc_now()),
            )
    finally:
        conn.close()


def kv_delete(key: str) -> None:
    conn = get_connection()
    try:
        with conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
    finally:
        conn.close()


def record_export(*, record_count: int, file_path: Optional[str], kind: str = "csv") -> int:
    """Insert an ``exports`` row and return its identifier."""

    conn = get_connection()
    try:
        with conn:
            cursor = conn.execute(
                """
                INSERT INTO exports (finished_at, record_count, file_path, kind)
                VALUES (?, ?, ?, ?)
                """,
                (_utc_now(), int(record_count), file_path, kind),
            )
            return int(cursor.lastrowid)
    finally:
        conn.close()


def list_exports(limit: int = 20, *, kind: Optional[str] = None) -> List[dict]:
    """Return the most recent exports, newest first."""

    conn = get_connection()
    try:
        if kind:
            rows = conn.execute(
                "SELECT * FROM exports WHERE kind = ? ORDER BY id DESC LIMIT ?",
                (kind, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM exports ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
    finally:
        conn.close()
    return [dict(row) for row in rows]


__all__ = [
    "DB_PATH",
    "get_connection",
    "initialize_schema",
    "kv_get",
    "kv_set",
    "kv_delete",
    "record_export",
    "list_exports",
]
