"""
Pipeline package -- resumable spreadsheet-to-form builder.

Re-exports key entry points so callers can do::

    from pipeline import open_source, group_by, FormBuilder, TimeBudget
"""

from pipeline.builder import (
    BuildResult,
    BuildState,
    FormBuilder,
    LevelSpec,
    ResumableInterrupt,
)
from pipeline.checkpoint import CheckpointStore, level_id
from pipeline.form_store import DocumentHandle, FormStore, FormStoreError, NodeRef
from pipeline.grouping import group_by, sorted_keys, tree_depth
from pipeline.source import CsvSource, SheetSource, SourceError, open_source
from pipeline.time_budget import TimeBudget

__all__ = [
    "BuildResult",
    "BuildState",
    "FormBuilder",
    "LevelSpec",
    "ResumableInterrupt",
    "CheckpointStore",
    "level_id",
    "DocumentHandle",
    "FormStore",
    "FormStoreError",
    "NodeRef",
    "group_by",
    "sorted_keys",
    "tree_depth",
    "CsvSource",
    "SheetSource",
    "SourceError",
    "open_source",
    "TimeBudget",
]
