"""Parse the free text of a ``/times`` command into a task name and start instant.

Two back-reference suffixes are understood, tried in this order:

``<name> back <H>:<MM>``
    The task started at the latest past occurrence of that wall-clock time
    (in the bot's fixed UTC offset). A time that has not come yet today means
    yesterday.
``<name> back <N>``
    The task started ``N`` minutes ago.

Anything else, including a malformed ``back`` suffix, is taken verbatim as the
task name. Parsing never fails.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass

DEFAULT_UTC_OFFSET_MINUTES = 9 * 60

CLOCK_TIME = "clock_time"
MINUTES_AGO = "minutes_ago"

_CLOCK_TIME_BACK = re.compile(r"^(?P<name>.+?)\s+back\s+(?P<hour>[0-2]?[0-9]):(?P<minute>[0-5]?[0-9])$")
_MINUTES_AGO_BACK = re.compile(r"^(?P<name>.+?)\s+back\s+(?P<minutes>[0-9]+)$")


@dataclass(frozen=True)
class BackReference:
    kind: str
    hour: int = 0
    minute: int = 0
    minutes: int = 0


@dataclass(frozen=True)
class Command:
    task_name: str
    back_reference: BackReference | None = None
    back_date: dt.datetime | None = None

    @property
    def is_back_dated(self) -> bool:
        return self.back_date is not None


def fixed_zone(utc_offset_minutes: int) -> dt.timezone:
    return dt.timezone(dt.timedelta(minutes=utc_offset_minutes))


def latest_clock_time(
    hour: int,
    minute: int,
    now: dt.datetime,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
) -> dt.datetime:
    """Return the most recent instant, at or before ``now``, showing ``hour:minute`` on the local clock."""
    local_now = _as_utc(now).astimezone(fixed_zone(utc_offset_minutes))
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    # Hours past 23 roll over into the next day before stepping back.
    target = midnight + dt.timedelta(hours=hour, minutes=minute)
    while target > local_now:
        target -= dt.timedelta(days=1)
    return target.astimezone(dt.timezone.utc)


def minutes_before(minutes: int, now: dt.datetime) -> dt.datetime:
    return _as_utc(now) - dt.timedelta(minutes=minutes)


def parse_command(
    text: str,
    now: dt.datetime | None = None,
    utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
) -> Command:
    now = _as_utc(now or dt.datetime.now(dt.timezone.utc))
    task_name = (text or "").strip()

    matched = _CLOCK_TIME_BACK.match(task_name)
    if matched:
        reference = BackReference(
            kind=CLOCK_TIME,
            hour=int(matched.group("hour")),
            minute=int(matched.group("minute")),
        )
        back_date = latest_clock_time(reference.hour, reference.minute, now, utc_offset_minutes)
        return Command(task_name=matched.group("name"), back_reference=reference, back_date=back_date)

    matched = _MINUTES_AGO_BACK.match(task_name)
    if matched:
        reference = BackReference(kind=MINUTES_AGO, minutes=int(matched.group("minutes")))
        try:
            back_date = minutes_before(reference.minutes, now)
        except OverflowError:
            return Command(task_name=task_name)
        return Command(task_name=matched.group("name"), back_reference=reference, back_date=back_date)

    return Command(task_name=task_name)


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
