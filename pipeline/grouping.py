"""
Grouping engine — partitions flat records into a nested tree.

    group_by(records, ["Borough", "Park Name"])
    -> {"Bronx": {"Claremont Park": [rec, ...], ...}, "Queens": {...}}

A tree node is either a leaf (the list of records in that group) or a dict
from key string to child node.  Keys are opaque strings (see
utils.strings.key_text); callers that need a stable order use sorted_keys().
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Union

from utils.strings import key_text

Record = Mapping[str, Any]
GroupTree = Union[list, dict]  # list[Record] | dict[str, GroupTree]


def group_by(records: Sequence[Record], key_columns: Sequence[str],
             depth: int = 0) -> GroupTree:
    """Group ``records`` by ``key_columns[depth:]``, outermost column first.

    The column sequence is read-only here; ``depth`` tracks how far down the
    recursion is.  With no columns left the records are returned unchanged.
    Members of a group keep their input order.
    """
    if depth >= len(key_columns):
        return records

    col = key_columns[depth]
    groups: dict[str, list[Record]] = {}
    for rec in records:
        groups.setdefault(key_text(rec.get(col)), []).append(rec)

    return {
        key: group_by(members, key_columns, depth + 1)
        for key, members in groups.items()
    }


def is_leaf(node: GroupTree) -> bool:
    return not isinstance(node, dict)


def sorted_keys(node: dict) -> list[str]:
    """Child keys in ascending lexicographic order."""
    return sorted(node)


def tree_depth(tree: GroupTree) -> int:
    """Number of internal levels above the leaves.

    An empty internal node still counts as one level.
    """
    depth = 0
    node = tree
    while isinstance(node, dict):
        depth += 1
        if not node:
            break
        node = next(iter(node.values()))
    return depth


def count_leaves(tree: GroupTree) -> int:
    """Number of leaf record groups in the tree (1 for a bare leaf)."""
    if is_leaf(tree):
        return 1
    return sum(count_leaves(child) for child in tree.values())
