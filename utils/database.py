"""Database utilities for the form builder.

Schema creation and connection pragmas for the builder database.

One SQLite file holds both the checkpoint metadata and the form document, so
a single connection is enough for a whole run.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from utils.config import DatabaseConfig


def init_pragmas(conn: sqlite3.Connection,
                 config: Optional[DatabaseConfig] = None) -> None:
    """Initialize SQLite performance and reliability pragmas.

    - WAL mode so an external monitor can read while a run writes
    - NORMAL synchronous mode: every commit survives a process kill
    - Memory temp store

    Args:
        conn: SQLite connection to configure
        config: Optional pragma settings (defaults to DatabaseConfig())
    """
    config = config or DatabaseConfig()
    if config.wal_mode:
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA synchronous={config.synchronous}")
    conn.execute(f"PRAGMA temp_store={config.temp_store}")
    conn.execute(f"PRAGMA cache_size={int(config.cache_size)}")
    conn.execute("PRAGMA foreign_keys=ON")


_SCHEMA = """
    -- Key/value metadata: form id and one cursor per hierarchy level
    CREATE TABLE IF NOT EXISTS form_metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL DEFAULT '',
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS forms (
        form_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );

    -- One row per form item.  scope is a JSON array of ancestor keys.
    CREATE TABLE IF NOT EXISTS form_items (
        item_id INTEGER PRIMARY KEY AUTOINCREMENT,
        form_id TEXT NOT NULL REFERENCES forms(form_id),
        kind TEXT NOT NULL,
        title TEXT NOT NULL,
        scope TEXT NOT NULL DEFAULT '[]',
        position INTEGER NOT NULL,
        help_text TEXT NOT NULL DEFAULT '',
        config TEXT NOT NULL DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(form_id, kind, title, scope)
    );

    CREATE INDEX IF NOT EXISTS idx_form_items_position
        ON form_items(form_id, position);
"""


def create_database(db_path: Path | str,
                    config: Optional[DatabaseConfig] = None) -> sqlite3.Connection:
    """Open (creating if needed) the builder database with all tables.

    ``":memory:"`` is accepted for tests.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    init_pragmas(conn, config)
    conn.executescript(_SCHEMA)
    conn.commit()
    return conn
