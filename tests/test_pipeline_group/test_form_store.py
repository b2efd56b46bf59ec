"""
Form Store Tests

Tests for pipeline/form_store.py and pipeline/fields.py:
- Opening and creating forms
- Get-or-create identity (kind, title, scope)
- Index rebuilt from the database on reopen
- Selector choice routing
- Leaf field rendering (deduplicated names, fixed choices, stall scale)

Run with: pytest tests/test_pipeline_group/test_form_store.py -v
"""

from types import MappingProxyType

import pytest

from pipeline.fields import (
    LEAF_FIELDS,
    MULTIPLE_CHOICE,
    PARAGRAPH,
    SCALE,
    SECTION_BREAK,
    SELECTOR,
    TIME,
    distinct_values,
    leaf_fields,
)
from pipeline.form_store import GO_TO_SUBMIT, FormStore, FormStoreError, NodeRef


@pytest.fixture
def store(db_conn):
    s = FormStore(db_conn)
    s.open_or_create_document()
    return s


def _park_records(*names):
    return [MappingProxyType({"Borough": "Bronx", "Park Name": "A", "Name": n})
            for n in names]


# ── documents ─────────────────────────────────────────────────────────────────

class TestDocuments:
    def test_create_new(self, db_conn):
        handle = FormStore(db_conn).open_or_create_document()
        assert handle.created
        assert handle.form_id.startswith("form-")
        assert handle.title == "Potty Project Data Entry"
        row = db_conn.execute("SELECT title FROM forms WHERE form_id = ?",
                              (handle.form_id,)).fetchone()
        assert row[0] == "Potty Project Data Entry"

    def test_custom_title(self, db_conn):
        handle = FormStore(db_conn).open_or_create_document(title="Restrooms")
        assert handle.title == "Restrooms"

    def test_reopen_existing(self, db_conn):
        first = FormStore(db_conn).open_or_create_document()
        again = FormStore(db_conn).open_or_create_document(first.form_id)
        assert again.form_id == first.form_id
        assert not again.created

    def test_unknown_id(self, db_conn):
        with pytest.raises(FormStoreError, match="not found"):
            FormStore(db_conn).open_or_create_document("form-missing")

    def test_requires_open_document(self, db_conn):
        s = FormStore(db_conn)
        with pytest.raises(FormStoreError, match="No form is open"):
            s.get_or_create_selector("Borough", ())
        with pytest.raises(FormStoreError):
            s.items()


# ── get-or-create ─────────────────────────────────────────────────────────────

class TestGetOrCreate:
    def test_selector_created_once(self, store):
        ref = store.get_or_create_selector("Borough", ())
        assert isinstance(ref, NodeRef)
        assert ref.kind == SELECTOR
        assert store.get_or_create_selector("Borough", ()) == ref
        assert store.count_items() == 1

    def test_scope_distinguishes_items(self, store):
        bronx = store.get_or_create_selector("Park Name", ("Bronx",))
        queens = store.get_or_create_selector("Park Name", ("Queens",))
        assert bronx != queens
        assert store.count_items(SELECTOR) == 2

    def test_kind_distinguishes_items(self, store):
        store.get_or_create_selector("Bronx", ())
        store.get_or_create_section_break("Bronx", ())
        assert store.count_items() == 2

    def test_section_break_goes_to_submit(self, store):
        store.get_or_create_section_break("A", ("Bronx",))
        item = store.items()[0]
        assert item["kind"] == SECTION_BREAK
        assert item["config"] == {"go_to": GO_TO_SUBMIT}
        assert item["scope"] == ["Bronx"]
        assert item["help_text"] == "Bronx"

    def test_positions_follow_creation_order(self, store):
        store.get_or_create_selector("Borough", ())
        store.get_or_create_section_break("Bronx", ())
        store.get_or_create_section_break("Queens", ())
        assert [it["position"] for it in store.items()] == [0, 1, 2]
        assert [it["title"] for it in store.items()] == ["Borough", "Bronx", "Queens"]

    def test_index_rebuilt_on_reopen(self, db_conn):
        first = FormStore(db_conn)
        handle = first.open_or_create_document()
        ref = first.get_or_create_selector("Borough", ())
        first.get_or_create_section_break("Bronx", ())

        second = FormStore(db_conn)
        second.open_or_create_document(handle.form_id)
        assert second.get_or_create_selector("Borough", ()) == ref
        second.get_or_create_section_break("Queens", ())
        assert second.count_items() == 3
        assert second.items()[-1]["position"] == 2

    def test_unknown_kind(self, store):
        with pytest.raises(FormStoreError, match="Unknown item kind"):
            store._get_or_create("checkbox", "x", ())

    def test_forms_are_isolated(self, db_conn):
        a = FormStore(db_conn)
        a.open_or_create_document()
        a.get_or_create_selector("Borough", ())
        b = FormStore(db_conn)
        b.open_or_create_document()
        assert b.count_items() == 0


# ── leaf fields ───────────────────────────────────────────────────────────────

class TestLeafFields:
    def test_creates_fixed_field_set(self, store):
        store.get_or_create_leaf_fields(("Bronx", "A"), _park_records("A1"))
        items = store.items()
        assert [(it["kind"], it["title"]) for it in items] == [
            (MULTIPLE_CHOICE, "Potty Name"),
            (MULTIPLE_CHOICE, "Type"),
            (SCALE, "Number of Stalls"),
            (TIME, "Opening time"),
            (TIME, "Closing Time"),
            (PARAGRAPH, "Any other info"),
        ]
        assert all(it["scope"] == ["Bronx", "A"] for it in items)
        assert items[0]["help_text"] == "Bronx / A"

    def test_names_deduplicated(self, store):
        store.get_or_create_leaf_fields(
            ("Bronx", "A"), _park_records("Pool", "Playground", "Pool", None, ""))
        potty = store.items()[0]
        assert potty["config"]["choices"] == ["Pool", "Playground"]

    def test_type_and_scale_config(self, store):
        store.get_or_create_leaf_fields(("Bronx", "A"), _park_records("A1"))
        by_title = {it["title"]: it["config"] for it in store.items()}
        assert by_title["Type"] == {"choices": ["Permanent", "Portapotty", "Trailer"]}
        assert by_title["Number of Stalls"] == {
            "lower": 1, "upper": 6, "lower_label": "", "upper_label": "or more",
        }
        assert by_title["Opening time"] == {}

    def test_idempotent(self, store):
        store.get_or_create_leaf_fields(("Bronx", "A"), _park_records("A1"))
        store.get_or_create_leaf_fields(("Bronx", "A"), _park_records("A1"))
        assert store.count_items() == len(LEAF_FIELDS)

    def test_custom_name_column(self, db_conn):
        s = FormStore(db_conn, leaf_fields("Facility"))
        s.open_or_create_document()
        s.get_or_create_leaf_fields(("Q",), [MappingProxyType({"Facility": "F1"})])
        assert s.items()[0]["config"]["choices"] == ["F1"]

    def test_distinct_values_keeps_first_occurrence(self):
        records = _park_records("b", "a", "b", "c", "a")
        assert distinct_values(records, "Name") == ["b", "a", "c"]


# ── selector choices ──────────────────────────────────────────────────────────

class TestSelectorChoices:
    def test_choices_route_to_sections(self, store):
        selector = store.get_or_create_selector("Borough", ())
        bronx = store.get_or_create_section_break("Bronx", ())
        queens = store.get_or_create_section_break("Queens", ())
        store.set_selector_choices(selector, [("Bronx", bronx), ("Queens", queens)])

        config = store.items()[0]["config"]
        assert config["choices"] == [
            {"label": "Bronx", "go_to": bronx.item_id},
            {"label": "Queens", "go_to": queens.item_id},
        ]

    def test_replaces_previous_choices(self, store):
        selector = store.get_or_create_selector("Borough", ())
        bronx = store.get_or_create_section_break("Bronx", ())
        store.set_selector_choices(selector, [("Bronx", bronx)])
        store.set_selector_choices(selector, [])
        assert store.items()[0]["config"] == {"choices": []}

    def test_rejects_non_selector(self, store):
        section = store.get_or_create_section_break("Bronx", ())
        with pytest.raises(FormStoreError, match="not a selector"):
            store.set_selector_choices(section, [])

    def test_rejects_foreign_selector(self, store):
        with pytest.raises(FormStoreError, match="not found"):
            store.set_selector_choices(NodeRef(9999, SELECTOR, "Borough"), [])

    def test_snapshot_is_id_free(self, store):
        selector = store.get_or_create_selector("Borough", ())
        bronx = store.get_or_create_section_break("Bronx", ())
        store.set_selector_choices(selector, [("Bronx", bronx)])
        snap = store.snapshot()
        assert snap[0] == {
            "kind": SELECTOR,
            "title": "Borough",
            "scope": [],
            "config": {"choices": [
                {"label": "Bronx", "go_to": [SECTION_BREAK, "Bronx", []]},
            ]},
        }
        assert "item_id" not in snap[1]
