"""
Form builder — walks the grouped tree and materializes it into the form store,
one sibling at a time, resumably.

For each level (outermost first) the builder:

  1. gets or creates the level's list selector in the parent scope;
  2. visits the level's keys in sorted order, skipping every key at or below
     the level's cursor (finished by an earlier run);
  3. before starting a key, checks the time budget -- once it is used up the
     walk stops and hands a ResumableInterrupt back up to build();
  4. creates the key's section, then either recurses into the next level or
     creates the leaf fields, and only then advances the cursor to the key;
  5. after the last key, clears the cursor and rebuilds the selector's choice
     list so every choice routes to its section.

An interrupted run leaves the choice lists of the levels it was inside
untouched; they are filled in when a later run completes those levels.

Usage::

    builder = FormBuilder(store, checkpoints, [LevelSpec("Borough"), LevelSpec("Park Name")])
    result = builder.build(group_by(records, ["Borough", "Park Name"]), TimeBudget.start())
    if not result.completed:
        ...  # exit with "try again later"
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pipeline.checkpoint import CheckpointStore, level_id
from pipeline.form_store import FormStore, Scope
from pipeline.grouping import GroupTree, is_leaf, sorted_keys, tree_depth
from pipeline.time_budget import TimeBudget
from utils.config import DEFAULT_SELECTOR_TITLES

logger = logging.getLogger(__name__)


class BuildState(enum.Enum):
    NOT_STARTED = "not_started"
    WALKING_LEVEL = "walking_level"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"


@dataclass(frozen=True)
class LevelSpec:
    """One hierarchy level: the title of the selector that picks its keys."""

    selector_title: str


DEFAULT_LEVELS = tuple(LevelSpec(t) for t in DEFAULT_SELECTOR_TITLES)


@dataclass(frozen=True)
class ResumableInterrupt:
    """Returned (not raised) when the time budget ran out before ``key``.

    ``key`` is the first key at ``level`` that was *not* started.
    """

    level: str
    key: str
    elapsed_seconds: float

    def describe(self) -> str:
        return (f"time budget used up after {self.elapsed_seconds:.1f}s; "
                f"next: {self.level} {self.key!r}")


@dataclass
class BuildResult:
    state: BuildState
    interrupt: ResumableInterrupt | None = None
    keys_processed: int = 0
    keys_skipped: int = 0
    leaves_materialized: int = 0
    elapsed_seconds: float = 0.0

    @property
    def completed(self) -> bool:
        return self.state is BuildState.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "state": self.state.value,
            "keys_processed": self.keys_processed,
            "keys_skipped": self.keys_skipped,
            "leaves_materialized": self.leaves_materialized,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }
        if self.interrupt is not None:
            d["interrupt"] = {
                "level": self.interrupt.level,
                "key": self.interrupt.key,
                "elapsed_seconds": round(self.interrupt.elapsed_seconds, 2),
            }
        return d


class FormBuilder:
    """Drives idempotent upserts into a FormStore from a grouped tree."""

    def __init__(self, store: FormStore, checkpoints: CheckpointStore,
                 levels: Sequence[LevelSpec] = DEFAULT_LEVELS) -> None:
        if not levels:
            raise ValueError("At least one level is required")
        self.store = store
        self.checkpoints = checkpoints
        self.levels = tuple(levels)
        self.state = BuildState.NOT_STARTED
        # (level id, key) being worked on; None outside build()
        self.position: tuple[str, str] | None = None
        self._result = BuildResult(state=BuildState.NOT_STARTED)

    def build(self, tree: GroupTree, budget: TimeBudget) -> BuildResult:
        """Run one bounded pass over ``tree``.

        An empty tree (no records) completes with an empty top-level selector.

        Raises:
            ValueError: If the tree's depth differs from the number of levels.
        """
        depth = tree_depth(tree)
        if is_leaf(tree) or (tree and depth != len(self.levels)):
            raise ValueError(
                f"Tree has {depth} level(s) but the builder is configured "
                f"for {len(self.levels)}"
            )

        self._result = BuildResult(state=BuildState.WALKING_LEVEL)
        self.state = BuildState.WALKING_LEVEL
        interrupt = self._walk_level(0, tree, (), budget)

        self.position = None
        self.state = BuildState.INTERRUPTED if interrupt else BuildState.COMPLETED
        self._result.state = self.state
        self._result.interrupt = interrupt
        self._result.elapsed_seconds = budget.elapsed()
        if interrupt:
            logger.info("Build interrupted: %s", interrupt.describe())
        else:
            logger.info("Build complete: %d key(s) processed, %d skipped",
                        self._result.keys_processed, self._result.keys_skipped)
        return self._result

    def _walk_level(self, depth: int, node: dict, scope: Scope,
                    budget: TimeBudget) -> ResumableInterrupt | None:
        level = level_id(depth)
        spec = self.levels[depth]
        selector = self.store.get_or_create_selector(spec.selector_title, scope)
        keys = sorted_keys(node)

        for key in keys:
            cursor = self.checkpoints.get_cursor(level)
            if key <= cursor:
                self._result.keys_skipped += 1
                logger.debug("Skipping %s %r (cursor %r)", level, key, cursor)
                continue

            if budget.is_expired():
                return ResumableInterrupt(level=level, key=key,
                                          elapsed_seconds=budget.elapsed())

            self.position = (level, key)
            logger.info("%s%s", "  " * depth, key)
            self.store.get_or_create_section_break(key, scope)
            child = node[key]
            if is_leaf(child):
                self.store.get_or_create_leaf_fields(scope + (key,), child)
                self._result.leaves_materialized += 1
            else:
                interrupt = self._walk_level(depth + 1, child, scope + (key,), budget)
                if interrupt is not None:
                    return interrupt

            self.checkpoints.set_cursor(level, key)
            self._result.keys_processed += 1

        self.checkpoints.set_cursor(level, "")
        self.store.set_selector_choices(selector, [
            (key, self.store.get_or_create_section_break(key, scope)) for key in keys
        ])
        return None
