"""
Checkpoint store — durable per-level cursors for resuming a build.

Each hierarchy level has one cursor: the last key at that level whose whole
subtree was materialized.  "" means no progress at that level yet.  Cursors
live in the ``form_metadata`` table next to the id of the form they belong
to, so a later invocation (a new process) picks up exactly where the previous
one stopped.

Every write commits immediately.  There is no multi-call transaction; the
builder only writes a cursor after the corresponding work is complete.
"""

from __future__ import annotations

import logging
import sqlite3

from utils.patterns import LEVEL_ID

logger = logging.getLogger(__name__)

_DOCUMENT_KEY = "form_id"


def level_id(depth: int) -> str:
    """Checkpoint key for hierarchy depth ``depth`` (0 = outermost)."""
    if depth < 0:
        raise ValueError(f"Level depth must be >= 0, got {depth}")
    return f"level{depth}"


def _check_level(level: str) -> None:
    if not LEVEL_ID.match(level):
        raise ValueError(f"Invalid checkpoint level id: {level!r}")


class CheckpointStore:
    """Cursor and form-id storage backed by an open SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ── generic key/value ────────────────────────────────────────────────

    def _get(self, key: str) -> str:
        row = self.conn.execute(
            "SELECT value FROM form_metadata WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else ""

    def _set(self, key: str, value: str) -> None:
        self.conn.execute("""
            INSERT INTO form_metadata (key, value, updated_at)
            VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, value))
        self.conn.commit()

    # ── cursors ──────────────────────────────────────────────────────────

    def get_cursor(self, level: str) -> str:
        """Last fully completed key at ``level`` ("" if none)."""
        _check_level(level)
        return self._get(level)

    def set_cursor(self, level: str, value: str) -> None:
        _check_level(level)
        self._set(level, value)
        logger.debug("Cursor %s -> %r", level, value)

    def cursors(self) -> dict[str, str]:
        """All stored cursors keyed by level id."""
        rows = self.conn.execute(
            "SELECT key, value FROM form_metadata ORDER BY key"
        ).fetchall()
        return {k: v for k, v in rows if LEVEL_ID.match(k)}

    def reset_cursors(self) -> None:
        """Clear every cursor so the next run walks the whole tree again.

        Safe on a populated form: the walk is idempotent, it just redoes the
        lookups.
        """
        for level in self.cursors():
            self._set(level, "")
        logger.info("All cursors reset")

    # ── document id ──────────────────────────────────────────────────────

    def get_document_id(self) -> str:
        """Id of the form the cursors refer to ("" before the first run)."""
        return self._get(_DOCUMENT_KEY)

    def set_document_id(self, form_id: str) -> None:
        self._set(_DOCUMENT_KEY, form_id)
