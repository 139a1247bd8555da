"""Task-session state machine for a single owner.

Pure logic: callers load the owner's open task, ask this module what the next
state is, and persist the result themselves.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field

from timesbot.services.command_parser import Command

_ONE_MILLISECOND = dt.timedelta(milliseconds=1)


class InvalidBackDate(ValueError):
    """Raised when a task would close before it started."""

    def __init__(self, requested: dt.datetime, open_since: dt.datetime) -> None:
        self.requested = requested
        self.open_since = open_since
        super().__init__(
            f"Cannot start at {requested.isoformat()}: the open task started at {open_since.isoformat()}"
        )


@dataclass(frozen=True)
class Owner:
    team_id: str
    user_id: str

    def __str__(self) -> str:
        return f"{self.team_id}/{self.user_id}"


def _new_task_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class OpenTask:
    owner: Owner
    task_name: str
    start_time: dt.datetime
    id: str = field(default_factory=_new_task_id)

    def close(self, end_time: dt.datetime) -> "CompletedTask":
        if end_time < self.start_time:
            raise InvalidBackDate(end_time, self.start_time)
        return CompletedTask(
            owner=self.owner,
            task_name=self.task_name,
            start_time=self.start_time,
            end_time=end_time,
            id=self.id,
        )


@dataclass(frozen=True)
class CompletedTask:
    owner: Owner
    task_name: str
    start_time: dt.datetime
    end_time: dt.datetime
    id: str = field(default_factory=_new_task_id)

    @property
    def duration_ms(self) -> int:
        return (self.end_time - self.start_time) // _ONE_MILLISECOND


@dataclass(frozen=True)
class StartResult:
    closed: CompletedTask | None
    next: OpenTask


def start_task(current: OpenTask | None, owner: Owner, command: Command, now: dt.datetime) -> StartResult:
    """Close ``current`` (if any) where the new task begins and open the new one.

    A back-dated start earlier than the open task's own start raises
    :class:`InvalidBackDate`; nothing is produced in that case.
    """
    effective_start = command.back_date or now
    closed = current.close(effective_start) if current is not None else None
    return StartResult(
        closed=closed,
        next=OpenTask(owner=owner, task_name=command.task_name, start_time=effective_start),
    )


def clock_out(current: OpenTask | None, now: dt.datetime) -> CompletedTask | None:
    """Close the open task at ``now``. ``None`` means there was nothing running."""
    if current is None:
        return None
    return current.close(now)


def display_state(current: OpenTask | None) -> str | None:
    return current.task_name if current is not None else None
