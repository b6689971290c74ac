"""Streak and progress math over daily practice records."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from fractions import Fraction
from typing import Protocol


class ProgressRecord(Protocol):
    date: date
    completed: bool


def utc_today(now: datetime | None = None) -> date:
    """Calendar day used for progress bookkeeping (UTC)."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def completed_dates(records: Iterable[ProgressRecord]) -> set[date]:
    """Days with at least one completed record.

    Duplicate rows for a day (constraint race) merge: any completed row counts.
    """
    return {r.date for r in records if r.completed}


def evaluate_streak(records: Iterable[ProgressRecord], today: date) -> int:
    """Consecutive completed days ending today; 0 if today is not completed."""
    done = completed_dates(records)
    if today not in done:
        return 0
    streak = 1
    day = today - timedelta(days=1)
    while day in done:
        streak += 1
        day -= timedelta(days=1)
    return streak


def compute_progress_percentage(completed_days: int, duration_days: int) -> int:
    """floor(100 * completed / duration), clamped to [0, 100]."""
    if duration_days <= 0:
        return 0
    pct = (100 * completed_days) // duration_days
    return max(0, min(100, pct))


def meets_completion_threshold(completed_days: int, duration_days: int, threshold: float = 0.80) -> bool:
    """completed / duration >= threshold, compared exactly (no float rounding at 0.8)."""
    if duration_days <= 0:
        return False
    return Fraction(completed_days, duration_days) >= Fraction(str(threshold))
