"""
Pipeline Run Ledger — append-only JSONL history of build runs.

Every time ``run_pipeline.py`` finishes (completed, interrupted or failed), a
single JSON line is appended to ``logs/pipeline/ledger.jsonl``.  A form that
takes several invocations to finish shows up as a run of ``interrupted``
lines followed by one ``completed`` line::

    tail -5 logs/pipeline/ledger.jsonl | python -m json.tool

The ledger is append-only and never truncated.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pipeline.logging import PipelineLogger


def append_to_ledger(
    pl: PipelineLogger,
    exit_code: int,
    build_state: str = "",
    ledger_path: Path | None = None,
) -> Path:
    """Append a one-line JSON record summarising this run to the ledger.

    Args:
        pl: The PipelineLogger for the current run (holds reports + args).
        exit_code: The process exit code (0 = completed, 75 = interrupted).
        build_state: Final builder state ("completed", "interrupted", ...).
        ledger_path: Override the default ``logs/pipeline/ledger.jsonl``.

    Returns:
        The path to the ledger file.
    """
    if ledger_path is None:
        ledger_path = pl.logs_root / "ledger.jsonl"

    steps_summary: dict[str, Any] = {}
    for name, rpt in pl.get_reports().items():
        entry: dict[str, Any] = {
            "status": rpt.status,
            "elapsed": round(rpt.elapsed_seconds, 1),
            "processed": rpt.items_processed,
            "skipped": rpt.items_skipped,
            "errored": rpt.items_errored,
        }
        if rpt.metrics:
            entry["metrics"] = rpt.metrics
        skip_cats = rpt.skip_counts_by_category()
        if skip_cats:
            entry["skip_categories"] = skip_cats
        steps_summary[name] = entry

    record = {
        "run_id": pl.run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_seconds": round(time.monotonic() - pl.pipeline_start, 1),
        "exit_code": exit_code,
        "build_state": build_state,
        "args": pl.args_dict,
        "steps": steps_summary,
    }

    ledger_path.parent.mkdir(parents=True, exist_ok=True)
    with open(ledger_path, "a") as f:
        f.write(json.dumps(record, separators=(",", ":"), default=str) + "\n")

    return ledger_path


def read_ledger(ledger_path: Path) -> list[dict[str, Any]]:
    """Return every record in the ledger, oldest first ([] if there is none)."""
    if not ledger_path.exists():
        return []
    with open(ledger_path) as f:
        return [json.loads(line) for line in f if line.strip()]
