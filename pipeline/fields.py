"""
Leaf field schema — the data-entry fields added under every park section.

    Potty Name        multiple choice, one choice per distinct "Name" value
    Type              multiple choice: Permanent / Portapotty / Trailer
    Number of Stalls  scale 1-6, upper label "or more"
    Opening time      time input
    Closing Time      time input
    Any other info    paragraph text

The set is fixed and its rendering is a pure function of the record group,
which is what lets FormStore.get_or_create_leaf_fields be idempotent.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from utils.config import DEFAULT_NAME_COLUMN, TYPE_CHOICES
from utils.strings import cell_text

# Item kinds understood by the form store
SELECTOR = "list"
SECTION_BREAK = "page_break"
MULTIPLE_CHOICE = "multiple_choice"
SCALE = "scale"
TIME = "time"
PARAGRAPH = "paragraph_text"

ITEM_KINDS = frozenset({SELECTOR, SECTION_BREAK, MULTIPLE_CHOICE, SCALE, TIME, PARAGRAPH})


def distinct_values(records: Sequence[Mapping[str, Any]], column: str) -> list[str]:
    """Non-blank values of ``column`` in first-occurrence order, duplicates removed.

    Duplicate choices make a multiple-choice item invalid, and the raw data
    does contain repeated names.
    """
    values = (cell_text(rec.get(column)) for rec in records)
    return list(dict.fromkeys(v for v in values if v))


@dataclass(frozen=True)
class FieldSpec:
    """One leaf field.  ``choices_from`` derives choices from a record column."""

    kind: str
    title: str
    choices: tuple[str, ...] = ()
    choices_from: str | None = None
    bounds: tuple[int, int] | None = None
    labels: tuple[str, str] | None = None

    def render(self, records: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        """Item config stored with the field."""
        config: dict[str, Any] = {}
        if self.choices_from is not None:
            config["choices"] = distinct_values(records, self.choices_from)
        elif self.choices:
            config["choices"] = list(self.choices)
        if self.bounds is not None:
            config["lower"], config["upper"] = self.bounds
        if self.labels is not None:
            config["lower_label"], config["upper_label"] = self.labels
        return config


def leaf_fields(name_column: str = DEFAULT_NAME_COLUMN) -> tuple[FieldSpec, ...]:
    return (
        FieldSpec(MULTIPLE_CHOICE, "Potty Name", choices_from=name_column),
        FieldSpec(MULTIPLE_CHOICE, "Type", choices=TYPE_CHOICES),
        FieldSpec(SCALE, "Number of Stalls", bounds=(1, 6), labels=("", "or more")),
        FieldSpec(TIME, "Opening time"),
        FieldSpec(TIME, "Closing Time"),
        FieldSpec(PARAGRAPH, "Any other info"),
    )


LEAF_FIELDS = leaf_fields()
