"""
Form pipeline runner -- one bounded run of the spreadsheet-to-form build.

Steps (in order):
  1. load   -- read the "Raw Data" sheet (or a CSV export) into records
  2. group  -- group records by the configured columns (Borough, Park Name)
  3. build  -- walk the grouped tree and get-or-create form items, resuming
               from the cursors stored by earlier runs

A run stops on its own once the time budget (default 240s) is used up.  The
cursors it leaves behind let the next invocation pick up at the first
unfinished key, so a scheduler simply calls this script again until it
exits 0.

Exit codes:
  0   form complete
  75  time budget used up -- invoke again later
  1   fatal error (bad source data, bad config, store error)

Features:
  - Per-step log files under logs/pipeline/<run-id>/ plus summary.json
  - Append-only JSONL ledger for cross-run history

Usage:
    python run_pipeline.py                                  # defaults / env vars
    python run_pipeline.py --source potty_data.xlsx --db form.sqlite
    python run_pipeline.py --config builder.json            # JSON settings file
    python run_pipeline.py --time-budget 60                 # shorter runs
    python run_pipeline.py --dry-run                        # load + group only
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Any, Callable

from pipeline.builder import BuildResult, FormBuilder, LevelSpec
from pipeline.checkpoint import CheckpointStore
from pipeline.fields import leaf_fields
from pipeline.form_store import DocumentHandle, FormStore
from pipeline.grouping import GroupTree, count_leaves, group_by, is_leaf, sorted_keys
from pipeline.logging import SKIP_ALREADY_DONE, PipelineLogger, StepReport
from pipeline.run_ledger import append_to_ledger
from pipeline.source import Record, open_source, require_columns
from pipeline.time_budget import TimeBudget
from utils.config import BuilderConfig
from utils.database import create_database
from utils.strings import BLANK_KEY

logger = logging.getLogger(__name__)

EXIT_COMPLETED = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 75  # EX_TEMPFAIL: "try again later"


# ── Helpers ───────────────────────────────────────────────────────────────────


def _banner(text: str) -> None:
    bar = "=" * 60
    print(f"\n{bar}")
    print(f"  {text}")
    print(f"{bar}\n", flush=True)


def _run_step(label: str, report: StepReport, fn: Callable[..., Any],
              *args: Any, **kwargs: Any) -> tuple[bool, Any]:
    """Run a pipeline step with timing and error accounting."""
    _banner(label)
    t0 = time.monotonic()
    try:
        result = fn(*args, **kwargs)
    except Exception as e:
        elapsed = time.monotonic() - t0
        print(f"\n[{label}] FAILED -- {elapsed:.1f}s: {e}", flush=True)
        logger.debug("%s failed", label, exc_info=True)
        report.status = "failed"
        report.add_error(f"{type(e).__name__}: {e}")
        return False, None
    elapsed = time.monotonic() - t0
    print(f"\n[{label}] OK -- {elapsed:.1f}s", flush=True)
    return True, result


def _describe_tree(tree: GroupTree, depth: int = 0, limit: int = 20) -> list[str]:
    """Indented outline of the tree for --dry-run output."""
    if is_leaf(tree):
        return []
    lines: list[str] = []
    keys = sorted_keys(tree)
    for key in keys[:limit]:
        child = tree[key]
        suffix = f" ({len(child)} record(s))" if is_leaf(child) else ""
        lines.append(f"{'  ' * depth}{key}{suffix}")
        lines.extend(_describe_tree(child, depth + 1, limit))
    if len(keys) > limit:
        lines.append(f"{'  ' * depth}... and {len(keys) - limit} more")
    return lines


# ── Step bodies ───────────────────────────────────────────────────────────────


def _load_records(config: BuilderConfig, report: StepReport) -> list[Record]:
    source = open_source(Path(config.source_path), config.sheet_name)
    records = source.fetch_records()
    require_columns(records, [*config.group_columns, config.name_column],
                    header=source.header)
    report.items_processed = len(records)
    report.metrics = {"columns": len(source.header)}
    return records


def _group_records(config: BuilderConfig, records: list[Record],
                   report: StepReport) -> GroupTree:
    tree = group_by(records, config.group_columns)
    report.items_processed = count_leaves(tree)
    report.metrics = {"top_level_keys": len(tree)}
    if BLANK_KEY in tree:
        report.detail = (f"records with a blank {config.group_columns[0]} "
                         f"grouped under {BLANK_KEY.strip()}")
    return tree


def _build_form(config: BuilderConfig, tree: GroupTree,
                budget: TimeBudget) -> tuple[DocumentHandle, BuildResult, int]:
    conn = create_database(Path(config.db_path))
    try:
        checkpoints = CheckpointStore(conn)
        store = FormStore(conn, leaf_fields(config.name_column))
        handle = store.open_or_create_document(checkpoints.get_document_id(),
                                               title=config.form_title)
        if handle.created:
            # Cursors from another form would skip work this one never had done.
            checkpoints.reset_cursors()
            checkpoints.set_document_id(handle.form_id)
        print(f"  Form: {handle.form_id} ({handle.title})", flush=True)

        builder = FormBuilder(store, checkpoints,
                              [LevelSpec(t) for t in config.selector_titles])
        result = builder.build(tree, budget)
        return handle, result, store.count_items()
    finally:
        conn.close()


# ── StepReport population helpers ─────────────────────────────────────────────


def _build_report_from_builder(report: StepReport, result: BuildResult,
                               form_items: int) -> None:
    """Populate a StepReport from FormBuilder.build()'s result."""
    report.items_processed = result.keys_processed
    report.metrics = {
        "leaves_materialized": result.leaves_materialized,
        "form_items": form_items,
        "budget_used_seconds": round(result.elapsed_seconds, 1),
    }
    if result.keys_skipped:
        report.add_skip(SKIP_ALREADY_DONE,
                        f"{result.keys_skipped} key(s) completed by an earlier run",
                        count=result.keys_skipped)
    if result.interrupt is not None:
        report.mark_interrupted(result.interrupt.level, result.interrupt.key,
                                result.interrupt.describe())


# ── Argument parser ───────────────────────────────────────────────────────────


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Build (or continue building) the data-entry form: load -> group -> build",
    )
    p.add_argument(
        "--config", default=None, metavar="JSON",
        help="JSON settings file layered over defaults and environment variables",
    )
    p.add_argument(
        "--source", default=None, metavar="PATH",
        help="Workbook (.xlsx) or CSV with the raw records (default: potty_data.xlsx)",
    )
    p.add_argument(
        "--sheet", default=None,
        help="Worksheet name (default: Raw Data)",
    )
    p.add_argument(
        "--db", default=None,
        help="Database holding cursors and the form (default: form_builder.sqlite)",
    )
    p.add_argument(
        "--time-budget", type=float, default=None, metavar="SECS",
        help="Stop gracefully after this many seconds (default: 240)",
    )
    p.add_argument(
        "--group-by", nargs="+", default=None, metavar="COL",
        help="Grouping columns, outermost first (default: Borough 'Park Name')",
    )
    p.add_argument(
        "--selector-titles", nargs="+", default=None, metavar="TITLE",
        help="Selector title per grouping column (default: the column names)",
    )
    p.add_argument(
        "--name-column", default=None,
        help="Column whose values become the 'Potty Name' choices (default: Name)",
    )
    p.add_argument(
        "--form-title", default=None,
        help="Title used when a new form is created",
    )
    p.add_argument(
        "--logs-dir", default=None,
        help="Directory for pipeline run logs (default: logs/pipeline)",
    )
    p.add_argument(
        "--dry-run", action="store_true",
        help="Load and group only; print the tree and leave the form untouched",
    )
    return p.parse_args(argv)


def _load_config(args: argparse.Namespace) -> BuilderConfig:
    """Layer CLI flags over the JSON file (if any) over env vars and defaults."""
    if args.config:
        config = BuilderConfig.load_json(Path(args.config))
    else:
        config = BuilderConfig.from_env()

    if args.source is not None:
        config.source_path = Path(args.source)
    if args.sheet is not None:
        config.sheet_name = args.sheet
    if args.db is not None:
        config.db_path = Path(args.db)
    if args.time_budget is not None:
        config.time_budget_seconds = args.time_budget
    if args.group_by is not None:
        config.group_columns = list(args.group_by)
        if args.selector_titles is None:
            config.selector_titles = list(args.group_by)
    if args.selector_titles is not None:
        config.selector_titles = list(args.selector_titles)
    if args.name_column is not None:
        config.name_column = args.name_column
    if args.form_title is not None:
        config.form_title = args.form_title
    if args.logs_dir is not None:
        config.logs_dir = Path(args.logs_dir)

    config.validate()
    return config


# ── Main ──────────────────────────────────────────────────────────────────────


def _run(config: BuilderConfig, budget: TimeBudget, pl: PipelineLogger,
         dry_run: bool) -> tuple[int, str]:
    """Run the steps; return (exit code, final build state)."""
    # ── Step 1: load ─────────────────────────────────────────────────────
    report = pl.start_step("load")
    ok, records = _run_step("Load records", report, _load_records, config, report)
    pl.finish_step("load", report)
    if not ok:
        return EXIT_FAILED, "failed"

    # ── Step 2: group ────────────────────────────────────────────────────
    report = pl.start_step("group")
    ok, tree = _run_step("Group records", report, _group_records, config, records, report)
    pl.finish_step("group", report)
    if not ok:
        return EXIT_FAILED, "failed"

    if dry_run:
        for line in _describe_tree(tree):
            print(f"  {line}")
        pl.record_user_skip("build", "--dry-run")
        return EXIT_COMPLETED, "dry_run"

    # ── Step 3: build ────────────────────────────────────────────────────
    report = pl.start_step("build")
    ok, outcome = _run_step("Build form", report, _build_form, config, tree, budget)
    if not ok:
        pl.finish_step("build", report)
        return EXIT_FAILED, "failed"

    handle, result, form_items = outcome
    _build_report_from_builder(report, result, form_items)
    report.detail = f"form {handle.form_id}"
    pl.finish_step("build", report)

    if result.completed:
        print(f"  Form complete: {form_items} item(s)", flush=True)
        return EXIT_COMPLETED, result.state.value
    print(f"  Stopped early ({result.interrupt.describe()}); run again to continue.",
          flush=True)
    return EXIT_INTERRUPTED, result.state.value


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        force=True,
    )

    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        print(f"ERROR: invalid configuration: {e}", flush=True)
        return EXIT_FAILED

    # The budget covers the whole invocation, loading included.
    budget = TimeBudget.start(config.time_budget_seconds)

    pl = PipelineLogger(logs_dir=config.logs_dir)
    pl.args_dict = {
        k: v for k, v in vars(args).items()
        if v is not None and v is not False
    }

    exit_code, state = _run(config, budget, pl, args.dry_run)

    summary_path = pl.write_summary({"build_state": state, "exit_code": exit_code})
    ledger_path = append_to_ledger(pl, exit_code, build_state=state)
    print(f"\n  Summary: {summary_path}", flush=True)
    print(f"  Ledger:  {ledger_path}", flush=True)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
