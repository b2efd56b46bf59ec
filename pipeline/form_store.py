"""
Form store — the SQLite-backed form document the builder writes into.

A form is an ordered list of items (list selectors, section breaks and
input fields).  Every item is identified by ``(kind, title, scope)`` where
scope is the tuple of ancestor keys, e.g. the "Park Name" selector for the
Bronx is ``("list", "Park Name", ("Bronx",))``.  All writes are get-or-create
on that identity:

    store = FormStore(conn)
    form = store.open_or_create_document(checkpoints.get_document_id())
    ref = store.get_or_create_selector("Borough", ())
    ref is store.get_or_create_selector("Borough", ())   # same NodeRef, no new row

Lookups go through an in-memory index rebuilt from ``form_items`` whenever a
document is opened, so get-or-create is a dict lookup rather than a scan of
every item.  The UNIQUE(form_id, kind, title, scope) constraint backs the
index up at the database level.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pipeline.fields import (
    ITEM_KINDS,
    LEAF_FIELDS,
    SECTION_BREAK,
    SELECTOR,
    FieldSpec,
)
from utils.common import make_id
from utils.config import DEFAULT_FORM_TITLE

logger = logging.getLogger(__name__)

Scope = tuple[str, ...]

# Section breaks end the form unless a selector routes elsewhere.
GO_TO_SUBMIT = "SUBMIT"


class FormStoreError(Exception):
    """Invalid use of the form store (no open document, unknown id, bad item)."""


@dataclass(frozen=True)
class NodeRef:
    """Opaque reference to one form item."""

    item_id: int
    kind: str
    title: str


@dataclass(frozen=True)
class DocumentHandle:
    form_id: str
    title: str
    created: bool = False


def _scope_key(scope: Sequence[str]) -> str:
    return json.dumps(list(scope), ensure_ascii=False)


class FormStore:
    """Get-or-create access to the items of one form."""

    def __init__(self, conn: sqlite3.Connection,
                 leaf_fields: Sequence[FieldSpec] = LEAF_FIELDS) -> None:
        self.conn = conn
        self.leaf_fields = tuple(leaf_fields)
        self.document: DocumentHandle | None = None
        self._index: dict[tuple[str, str, str], NodeRef] = {}
        self._next_position = 0

    # ── documents ────────────────────────────────────────────────────────

    def open_or_create_document(self, existing_id: str = "",
                                title: str = DEFAULT_FORM_TITLE) -> DocumentHandle:
        """Open form ``existing_id``, or create a new form when it is empty.

        Raises:
            FormStoreError: If ``existing_id`` is non-empty but unknown.
        """
        if existing_id:
            row = self.conn.execute(
                "SELECT form_id, title FROM forms WHERE form_id = ?", (existing_id,)
            ).fetchone()
            if row is None:
                raise FormStoreError(f"Form not found: {existing_id}")
            handle = DocumentHandle(form_id=row[0], title=row[1], created=False)
        else:
            handle = DocumentHandle(form_id=make_id("form"), title=title, created=True)
            self.conn.execute(
                "INSERT INTO forms (form_id, title) VALUES (?, ?)",
                (handle.form_id, handle.title),
            )
            self.conn.commit()
            logger.info("Created form %s (%s)", handle.form_id, handle.title)

        self.document = handle
        self._load_index()
        return handle

    def _require_document(self) -> str:
        if self.document is None:
            raise FormStoreError("No form is open; call open_or_create_document() first")
        return self.document.form_id

    def _load_index(self) -> None:
        form_id = self._require_document()
        self._index.clear()
        rows = self.conn.execute(
            "SELECT item_id, kind, title, scope, position FROM form_items "
            "WHERE form_id = ? ORDER BY position",
            (form_id,),
        ).fetchall()
        for item_id, kind, title, scope, _position in rows:
            self._index[(kind, title, scope)] = NodeRef(item_id, kind, title)
        self._next_position = (rows[-1][4] + 1) if rows else 0
        logger.debug("Indexed %d existing item(s) for form %s", len(rows), form_id)

    # ── get-or-create ────────────────────────────────────────────────────

    def _get_or_create(self, kind: str, title: str, scope: Sequence[str],
                       config: Mapping[str, Any] | None = None) -> NodeRef:
        if kind not in ITEM_KINDS:
            raise FormStoreError(f"Unknown item kind: {kind!r}")
        form_id = self._require_document()
        key = (kind, title, _scope_key(scope))
        ref = self._index.get(key)
        if ref is not None:
            return ref

        cursor = self.conn.execute("""
            INSERT INTO form_items (form_id, kind, title, scope, position, help_text, config)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (form_id, kind, title, key[2], self._next_position,
              " / ".join(scope), json.dumps(dict(config or {}), ensure_ascii=False)))
        self.conn.commit()
        self._next_position += 1
        ref = NodeRef(cursor.lastrowid, kind, title)
        self._index[key] = ref
        return ref

    def get_or_create_selector(self, title: str, scope: Sequence[str]) -> NodeRef:
        return self._get_or_create(SELECTOR, title, scope, {"choices": []})

    def get_or_create_section_break(self, title: str, scope: Sequence[str]) -> NodeRef:
        return self._get_or_create(SECTION_BREAK, title, scope, {"go_to": GO_TO_SUBMIT})

    def get_or_create_leaf_fields(self, scope: Sequence[str],
                                  records: Sequence[Mapping[str, Any]]) -> None:
        """Create the fixed data-entry fields for one record group."""
        for spec in self.leaf_fields:
            self._get_or_create(spec.kind, spec.title, scope, spec.render(records))

    def set_selector_choices(self, selector: NodeRef,
                             choices: Sequence[tuple[str, NodeRef]]) -> None:
        """Replace the choice list of ``selector``; each choice routes to a section.

        Raises:
            FormStoreError: If ``selector`` is not a list selector of the open form.
        """
        form_id = self._require_document()
        if selector.kind != SELECTOR:
            raise FormStoreError(f"Item {selector.item_id} is a {selector.kind}, not a selector")
        payload = {
            "choices": [
                {"label": label, "go_to": target.item_id} for label, target in choices
            ],
        }
        updated = self.conn.execute(
            "UPDATE form_items SET config = ? WHERE item_id = ? AND form_id = ?",
            (json.dumps(payload, ensure_ascii=False), selector.item_id, form_id),
        ).rowcount
        if updated != 1:
            raise FormStoreError(f"Selector {selector.item_id} not found in form {form_id}")
        self.conn.commit()

    # ── read side ────────────────────────────────────────────────────────

    def items(self) -> list[dict[str, Any]]:
        """Items of the open form in creation order, with decoded scope and config."""
        form_id = self._require_document()
        rows = self.conn.execute(
            "SELECT item_id, kind, title, scope, position, help_text, config "
            "FROM form_items WHERE form_id = ? ORDER BY position",
            (form_id,),
        ).fetchall()
        return [
            {
                "item_id": r[0],
                "kind": r[1],
                "title": r[2],
                "scope": json.loads(r[3]),
                "position": r[4],
                "help_text": r[5],
                "config": json.loads(r[6]),
            }
            for r in rows
        ]

    def snapshot(self) -> list[dict[str, Any]]:
        """Id-free view of the form for comparing two builds.

        Choice targets are written as (kind, title, scope) of the target item.
        """
        items = self.items()
        by_id = {it["item_id"]: it for it in items}
        out = []
        for it in items:
            config = dict(it["config"])
            if it["kind"] == SELECTOR:
                config["choices"] = [
                    {
                        "label": c["label"],
                        "go_to": [by_id[c["go_to"]]["kind"], by_id[c["go_to"]]["title"],
                                  by_id[c["go_to"]]["scope"]],
                    }
                    for c in config.get("choices", [])
                ]
            out.append({
                "kind": it["kind"],
                "title": it["title"],
                "scope": it["scope"],
                "config": config,
            })
        return out

    def count_items(self, kind: str | None = None) -> int:
        form_id = self._require_document()
        if kind is None:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM form_items WHERE form_id = ?", (form_id,)
            ).fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM form_items WHERE form_id = ? AND kind = ?",
                (form_id, kind),
            ).fetchone()
        return row[0]
