"""SQLite database layer: connection management, schema, meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Schema version: increment on breaking changes
SCHEMA_VERSION = "1"

# Seconds a connection waits on a locked database before failing.
BUSY_TIMEOUT = 30.0

_SCHEMA_SQL = """\
-- One row per non-blank line of a dated journal file
CREATE TABLE IF NOT EXISTS lines (
    id               INTEGER PRIMARY KEY,
    file_path        TEXT NOT NULL,
    line_number      INTEGER NOT NULL CHECK(line_number >= 1),
    line_content     TEXT NOT NULL,
    file_modified_at INTEGER NOT NULL,
    UNIQUE(file_path, line_number)
);

-- Full-text index over line content (external content table)
CREATE VIRTUAL TABLE IF NOT EXISTS lines_fts USING fts5(
    line_content,
    content='lines',
    content_rowid='id',
    tokenize='unicode61 remove_diacritics 0'
);

CREATE TRIGGER IF NOT EXISTS lines_ai AFTER INSERT ON lines BEGIN
    INSERT INTO lines_fts(rowid, line_content) VALUES (new.id, new.line_content);
END;

CREATE TRIGGER IF NOT EXISTS lines_ad AFTER DELETE ON lines BEGIN
    INSERT INTO lines_fts(lines_fts, rowid, line_content)
    VALUES ('delete', old.id, old.line_content);
END;

-- Index metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_lines_file ON lines(file_path);
CREATE INDEX IF NOT EXISTS idx_lines_modified ON lines(file_modified_at);
"""


def open_db(db_path: Path, *, create: bool = True) -> sqlite3.Connection:
    """Open (or create) a SQLite database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file) so readers never block on
    the single writer. With ``create=False`` the file must already exist.

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    if create:
        conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT, check_same_thread=False)
    else:
        conn = sqlite3.connect(
            f"file:{db_path}?mode=rw",
            uri=True,
            timeout=BUSY_TIMEOUT,
            check_same_thread=False,
        )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables, triggers and indexes if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)


def get_meta(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    """Read a value from the ``meta`` table.

    Returns *default* (``None``) if the key doesn't exist.
    """
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    return str(row[0])


def set_meta(conn: sqlite3.Connection, key: str, value: str, *, commit: bool = True) -> None:
    """Insert or update a key in the ``meta`` table.

    Pass ``commit=False`` to fold the write into an enclosing transaction.
    """
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    if commit:
        conn.commit()
