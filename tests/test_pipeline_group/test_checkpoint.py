"""
Checkpoint Store Tests

Tests for resume-cursor tracking in pipeline/checkpoint.py:
- Level ids
- Cursor reads and writes
- Persistence across connections (a new process resuming)
- Reset and form-id storage

Run with: pytest tests/test_pipeline_group/test_checkpoint.py -v
"""

import pytest

from pipeline.checkpoint import CheckpointStore, level_id
from utils.database import create_database


class TestLevelId:
    def test_formats(self):
        assert level_id(0) == "level0"
        assert level_id(3) == "level3"

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            level_id(-1)


class TestCursors:
    """Test cursor storage."""

    def test_unset_cursor_is_empty(self, db_conn):
        assert CheckpointStore(db_conn).get_cursor("level0") == ""

    def test_set_and_get(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_cursor("level0", "Bronx")
        assert store.get_cursor("level0") == "Bronx"

    def test_overwrite(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_cursor("level1", "A")
        store.set_cursor("level1", "B")
        assert store.get_cursor("level1") == "B"

    def test_clear_to_empty(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_cursor("level0", "Bronx")
        store.set_cursor("level0", "")
        assert store.get_cursor("level0") == ""

    def test_invalid_level_rejected(self, db_conn):
        store = CheckpointStore(db_conn)
        with pytest.raises(ValueError, match="Invalid checkpoint level"):
            store.set_cursor("form_id", "x")
        with pytest.raises(ValueError):
            store.get_cursor("B2")

    def test_cursors_excludes_form_id(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_document_id("form-1")
        store.set_cursor("level0", "Bronx")
        store.set_cursor("level1", "A")
        assert store.cursors() == {"level0": "Bronx", "level1": "A"}

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "form.sqlite"
        conn = create_database(path)
        CheckpointStore(conn).set_cursor("level1", "Claremont Park")
        conn.close()

        conn = create_database(path)
        try:
            assert CheckpointStore(conn).get_cursor("level1") == "Claremont Park"
        finally:
            conn.close()

    def test_reset_cursors(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_document_id("form-1")
        store.set_cursor("level0", "Bronx")
        store.set_cursor("level1", "A")
        store.reset_cursors()
        assert store.cursors() == {"level0": "", "level1": ""}
        # reset leaves the form id alone
        assert store.get_document_id() == "form-1"


class TestDocumentId:
    def test_unset_is_empty(self, db_conn):
        assert CheckpointStore(db_conn).get_document_id() == ""

    def test_set_and_get(self, db_conn):
        store = CheckpointStore(db_conn)
        store.set_document_id("form-20260101-000000-abcd1234")
        assert store.get_document_id() == "form-20260101-000000-abcd1234"
