"""
Time budget for one bounded build run.

The runner that invokes the builder kills it after a few minutes, so the
builder checks the budget before starting each sibling and stops cleanly once
the safety margin is used up.  A TimeBudget is created once at run start and
passed down explicitly; nothing reads a global start time.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from utils.config import DEFAULT_TIME_BUDGET_SECONDS


@dataclass(frozen=True)
class TimeBudget:
    """Wall-clock budget measured from ``started_at`` on ``clock``.

    ``started_at`` defaults to the clock reading at construction, so
    ``TimeBudget()`` and ``TimeBudget.start()`` both begin a fresh budget.
    """

    margin_seconds: float = DEFAULT_TIME_BUDGET_SECONDS
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)
    started_at: float | None = None

    def __post_init__(self) -> None:
        if self.started_at is None:
            object.__setattr__(self, "started_at", self.clock())

    @classmethod
    def start(cls, margin_seconds: float = DEFAULT_TIME_BUDGET_SECONDS,
              clock: Callable[[], float] = time.monotonic) -> "TimeBudget":
        """Capture the run start on ``clock`` and return the budget."""
        return cls(margin_seconds=float(margin_seconds), clock=clock)

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float:
        return max(0.0, self.margin_seconds - self.elapsed())

    def is_expired(self) -> bool:
        """True once elapsed time is strictly greater than the margin."""
        return self.elapsed() > self.margin_seconds
