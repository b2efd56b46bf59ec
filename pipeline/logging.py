"""
Run logging for the form builder.

Each run of ``run_pipeline.py`` gets ``<logs_dir>/<run_id>/`` holding one log
file per step (load, group, build) and a ``summary.json``.  A StepReport
collects the counts the runner prints and the ledger records.

Skip categories:
    already_done   key at or below its level cursor, finished by an earlier run
    time_budget    the key the build stopped before; the next run starts there
    user_skipped   step not run because of a flag (--dry-run)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SKIP_ALREADY_DONE = "already_done"
SKIP_TIME_BUDGET = "time_budget"
SKIP_USER = "user_skipped"

_MAX_LOGGED_ERRORS = 20


@dataclass
class SkipRecord:
    category: str
    detail: str
    item: str = ""         # "<level id>:<key>" for builder skips

    def to_dict(self) -> dict[str, str]:
        d: dict[str, str] = {"category": self.category, "detail": self.detail}
        if self.item:
            d["item"] = self.item
        return d


@dataclass
class StepReport:
    """Counts and notes for one step of a run."""

    step_name: str
    status: str = "not_started"   # started | completed | interrupted | failed | skipped
    elapsed_seconds: float = 0.0
    items_processed: int = 0
    items_skipped: int = 0
    items_errored: int = 0
    skips: list[SkipRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    def add_skip(self, category: str, detail: str, item: str = "",
                 count: int = 1) -> None:
        self.skips.append(SkipRecord(category=category, detail=detail, item=item))
        self.items_skipped += count

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.items_errored += 1

    def mark_interrupted(self, level: str, key: str, detail: str) -> None:
        """Record that the time budget ran out before ``key`` at ``level``.

        The key itself is not counted as skipped; it is the next run's work.
        """
        self.status = "interrupted"
        self.add_skip(SKIP_TIME_BUDGET, detail, item=f"{level}:{key}", count=0)

    @property
    def resume_point(self) -> str:
        """``<level id>:<key>`` the next run starts at, or "" if not interrupted."""
        for s in self.skips:
            if s.category == SKIP_TIME_BUDGET:
                return s.item
        return ""

    def skip_counts_by_category(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for s in self.skips:
            counts[s.category] = counts.get(s.category, 0) + 1
        return counts

    def console_summary(self) -> str:
        parts: list[str] = []
        if self.items_processed:
            parts.append(f"{self.items_processed:,} processed")
        if self.items_skipped:
            cats = sorted(self.skip_counts_by_category())
            parts.append(f"{self.items_skipped:,} skipped "
                         f"({', '.join(c.replace('_', ' ') for c in cats)})")
        if self.items_errored:
            parts.append(f"{self.items_errored:,} errors")
        if self.detail:
            parts.append(self.detail)
        for key, val in self.metrics.items():
            if isinstance(val, bool):
                continue
            if isinstance(val, int):
                parts.append(f"{key}: {val:,}")
            elif isinstance(val, float):
                parts.append(f"{key}: {val:.1f}")
        return " | ".join(parts) if parts else "no activity"

    def to_dict(self) -> dict[str, Any]:
        d = {
            "step_name": self.step_name,
            "status": self.status,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "items_processed": self.items_processed,
            "items_skipped": self.items_skipped,
            "items_errored": self.items_errored,
            "metrics": self.metrics,
        }
        if self.detail:
            d["detail"] = self.detail
        if self.skips:
            d["skips"] = [s.to_dict() for s in self.skips]
        if self.errors:
            d["errors"] = self.errors
        return d


def _step_footer(step_name: str, report: StepReport) -> str:
    """Block appended to a step's log file when the step finishes."""
    rule = "=" * 60
    lines = [
        "",
        rule,
        f"STEP SUMMARY: {step_name}",
        f"  Status:    {report.status}",
        f"  Elapsed:   {report.elapsed_seconds:.1f}s",
        f"  Processed: {report.items_processed}",
        f"  Skipped:   {report.items_skipped}",
        f"  Errors:    {report.items_errored}",
    ]
    if report.resume_point:
        lines.append(f"  Resume at: {report.resume_point}")
    if report.skips:
        lines.append("  Skip breakdown:")
        lines.extend(f"    {cat}: {count}"
                     for cat, count in sorted(report.skip_counts_by_category().items()))
    if report.errors:
        lines.append("  Error details:")
        lines.extend(f"    - {err}" for err in report.errors[:_MAX_LOGGED_ERRORS])
        if len(report.errors) > _MAX_LOGGED_ERRORS:
            lines.append(f"    ... and {len(report.errors) - _MAX_LOGGED_ERRORS} more")
    lines.append(rule)
    return "\n".join(lines) + "\n"


class PipelineLogger:
    """Per-run log directory with one file handler per active step."""

    def __init__(self, logs_dir: Path | str = "logs/pipeline") -> None:
        self.logs_root = Path(logs_dir)
        self.run_id = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        self.run_dir = self.logs_root / self.run_id
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self._step_handlers: dict[str, logging.FileHandler] = {}
        self._step_start_times: dict[str, float] = {}
        self._reports: dict[str, StepReport] = {}

        self.pipeline_start = time.monotonic()
        self.args_dict: dict[str, Any] = {}

    def start_step(self, step_name: str) -> StepReport:
        """Attach ``<run_dir>/<step_name>.log`` to the root logger."""
        handler = logging.FileHandler(self.run_dir / f"{step_name}.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
        self._step_handlers[step_name] = handler
        self._step_start_times[step_name] = time.monotonic()

        report = StepReport(step_name=step_name, status="started")
        self._reports[step_name] = report
        return report

    def finish_step(self, step_name: str, report: StepReport | None = None) -> None:
        t0 = self._step_start_times.pop(step_name, self.pipeline_start)
        if report is None:
            report = self._reports.get(step_name, StepReport(step_name=step_name))
        report.elapsed_seconds = time.monotonic() - t0
        if report.status == "started":
            report.status = "completed"
        self._reports[step_name] = report

        if report.items_skipped or report.items_errored or report.resume_point:
            print(f"  [{step_name}] {report.console_summary()}", flush=True)

        handler = self._step_handlers.pop(step_name, None)
        if handler:
            handler.stream.write(_step_footer(step_name, report))
            handler.close()
            logging.getLogger().removeHandler(handler)

    def record_user_skip(self, step_name: str, reason: str) -> None:
        report = StepReport(step_name=step_name, status="skipped")
        report.add_skip(SKIP_USER, reason)
        self._reports[step_name] = report

    def write_summary(self, extra: dict[str, Any] | None = None) -> Path:
        """Write ``summary.json`` for the run; ``extra`` keys go at the top level."""
        summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_elapsed_seconds": round(time.monotonic() - self.pipeline_start, 2),
            "args": self.args_dict,
            "steps": {name: rpt.to_dict() for name, rpt in self._reports.items()},
        }
        if extra:
            summary.update(extra)
        path = self.summary_path
        with open(path, "w") as f:
            json.dump(summary, f, indent=2, default=str)
        return path

    def get_reports(self) -> dict[str, StepReport]:
        return dict(self._reports)

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.json"
