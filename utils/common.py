"""Common utility functions used across the form builder tools."""

import sqlite3
import sys
import uuid
from datetime import datetime
from pathlib import Path


def make_id(prefix: str) -> str:
    """Create a unique, sortable identifier such as ``form-20260101-120000-1a2b3c4d``."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    unique_id = str(uuid.uuid4())[:8]
    return f"{prefix}-{timestamp}-{unique_id}"


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open an existing builder database.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row for dict-like access.

    Raises:
        SystemExit: If database file does not exist.
    """
    if not db_path.exists():
        print(f"ERROR: Database not found: {db_path}")
        print("Run 'python run_pipeline.py' first to build the form.")
        sys.exit(1)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn
