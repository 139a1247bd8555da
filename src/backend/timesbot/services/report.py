from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping

from timesbot.services.accounting import CompletedTask
from timesbot.services.command_parser import DEFAULT_UTC_OFFSET_MINUTES, fixed_zone

LAST_WEEK = "last_week"
LAST_MONTH = "last_month"
LAST_HALF_YEAR = "last_half_year"
LAST_YEAR = "last_year"

REPORT_WINDOWS: Mapping[str, int] = {
    LAST_WEEK: 7,
    LAST_MONTH: 30,
    LAST_HALF_YEAR: 182,
    LAST_YEAR: 365,
}

_MS_PER_MINUTE = 60 * 1000
_MS_PER_HOUR = 60 * _MS_PER_MINUTE


@dataclass(frozen=True)
class SummarizedTask:
    task_name: str
    total_ms: int
    rate: int

    @property
    def total_time(self) -> str:
        return format_duration(self.total_ms)


def rate_of(part_ms: int, total_ms: int) -> int:
    """Integer percentage of ``part_ms`` in ``total_ms``, floored; 0 when there is no total."""
    if total_ms <= 0:
        return 0
    return part_ms * 100 // total_ms


def summarize(completed: Iterable[CompletedTask], window_start: dt.datetime | None = None) -> list[SummarizedTask]:
    """Total the tasks that started inside the window, grouped by exact task name.

    A task that started before ``window_start`` is left out entirely even when
    it ran into the window. Results are ordered by task name.
    """
    totals: dict[str, int] = defaultdict(int)
    for task in completed:
        if window_start is not None and task.start_time < window_start:
            continue
        totals[task.task_name] += task.duration_ms

    window_total = sum(totals.values())
    return [
        SummarizedTask(task_name=name, total_ms=total, rate=rate_of(total, window_total))
        for name, total in sorted(totals.items())
    ]


def window_start(days: int, now: dt.datetime, utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES) -> dt.datetime:
    """Local midnight ``days`` days before ``now``."""
    local_now = now.astimezone(fixed_zone(utc_offset_minutes))
    start = (local_now - dt.timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(dt.timezone.utc)


def summarize_windows(
    completed: Iterable[CompletedTask],
    now: dt.datetime,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
    windows: Mapping[str, int] = REPORT_WINDOWS,
) -> dict[str, list[SummarizedTask]]:
    tasks = list(completed)
    return {
        name: summarize(tasks, window_start(days, now, utc_offset_minutes))
        for name, days in windows.items()
    }


def earliest_window_start(
    now: dt.datetime,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
    windows: Mapping[str, int] = REPORT_WINDOWS,
) -> dt.datetime:
    return window_start(max(windows.values()), now, utc_offset_minutes)


def format_duration(total_ms: int) -> str:
    """Format milliseconds as ``45m`` below an hour and ``1.5h`` from there on."""
    if total_ms < _MS_PER_HOUR:
        return f"{total_ms // _MS_PER_MINUTE}m"
    return f"{total_ms / _MS_PER_HOUR:.1f}h"
