from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Iterable, Sequence, TypeVar

from sqlalchemy import Select, delete, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from timesbot.models import CurrentTask, DoneTask
from timesbot.services.accounting import CompletedTask, OpenTask, Owner

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionRecord = OpenTask | CompletedTask


class StorageFailure(RuntimeError):
    """Raised when the task store cannot complete a read or a write."""


class SessionStore:
    """Persist an owner's running work day and archived task history.

    ``current_tasks`` holds everything since the owner's last clock out (the
    open task has no ``end_time``); ``done_tasks`` holds archived history.
    Both are keyed by the task id, so every write is an idempotent upsert.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # -- current work day -------------------------------------------------

    def find_latest_open(self, owner: Owner) -> OpenTask | None:
        stmt = (
            self._current_stmt(owner)
            .where(CurrentTask.end_time.is_(None))
            .order_by(CurrentTask.start_time.desc())
            .limit(1)
        )
        rows = self._read(lambda: list(self._session.execute(stmt).scalars()))
        return _to_open_task(rows[0]) if rows else None

    def find_all_open(self, owner: Owner) -> list[OpenTask]:
        stmt = (
            self._current_stmt(owner)
            .where(CurrentTask.end_time.is_(None))
            .order_by(CurrentTask.start_time)
        )
        rows = self._read(lambda: list(self._session.execute(stmt).scalars()))
        return [_to_open_task(row) for row in rows]

    def find_session_closed(self, owner: Owner) -> list[CompletedTask]:
        stmt = (
            self._current_stmt(owner)
            .where(CurrentTask.end_time.is_not(None))
            .order_by(CurrentTask.start_time)
        )
        rows = self._read(lambda: list(self._session.execute(stmt).scalars()))
        return [_to_completed_task(row) for row in rows]

    def upsert(self, record: SessionRecord) -> None:
        self.save(record)

    def save(self, *records: SessionRecord) -> None:
        """Upsert several current-day records in one transaction."""

        def _merge() -> None:
            for record in records:
                self._session.merge(_to_current_row(record))

        self._write(_merge)

    def remove(self, owner: Owner) -> int:
        """Delete every current-day record of ``owner``."""
        stmt = delete(CurrentTask).where(
            CurrentTask.team_id == owner.team_id,
            CurrentTask.user_id == owner.user_id,
        )
        return self._write(lambda: self._session.execute(stmt).rowcount or 0)

    def remove_open(self, owner: Owner) -> int:
        """Delete only the open records of ``owner``; closed ones stay."""
        stmt = delete(CurrentTask).where(
            CurrentTask.team_id == owner.team_id,
            CurrentTask.user_id == owner.user_id,
            CurrentTask.end_time.is_(None),
        )
        return self._write(lambda: self._session.execute(stmt).rowcount or 0)

    # -- history ----------------------------------------------------------

    def find_completed_after(self, owner: Owner, after: dt.datetime) -> list[CompletedTask]:
        stmt = (
            select(DoneTask)
            .where(DoneTask.team_id == owner.team_id)
            .where(DoneTask.user_id == owner.user_id)
            .where(DoneTask.start_time >= _as_utc(after))
            .order_by(DoneTask.start_time)
        )
        rows = self._read(lambda: list(self._session.execute(stmt).scalars()))
        return [_to_completed_task(row) for row in rows]

    def add_all(self, completed: Iterable[CompletedTask]) -> None:
        tasks = list(completed)

        def _merge() -> None:
            for task in tasks:
                self._session.merge(_to_done_row(task))

        self._write(_merge)

    def archive(self, owner: Owner, completed: Sequence[CompletedTask]) -> None:
        """Move the owner's work day into history: add ``completed`` and clear current records."""

        def _move() -> None:
            for task in completed:
                self._session.merge(_to_done_row(task))
            self._session.execute(
                delete(CurrentTask).where(
                    CurrentTask.team_id == owner.team_id,
                    CurrentTask.user_id == owner.user_id,
                )
            )

        self._write(_move)

    # -- plumbing ---------------------------------------------------------

    @staticmethod
    def _current_stmt(owner: Owner) -> Select[tuple[CurrentTask]]:
        return (
            select(CurrentTask)
            .where(CurrentTask.team_id == owner.team_id)
            .where(CurrentTask.user_id == owner.user_id)
        )

    def _read(self, query: Callable[[], T]) -> T:
        try:
            return query()
        except SQLAlchemyError as exc:
            logger.error("Task store read failed: %s", exc)
            raise StorageFailure("Unable to read tasks.") from exc

    def _write(self, action: Callable[[], T]) -> T:
        try:
            return self._commit_with_retry(action)
        except SQLAlchemyError as exc:
            logger.error("Task store write failed: %s", exc)
            raise StorageFailure("Unable to write tasks.") from exc

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=2),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def _commit_with_retry(self, action: Callable[[], T]) -> T:
        try:
            result = action()
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            raise
        return result


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _to_open_task(row: CurrentTask) -> OpenTask:
    return OpenTask(
        owner=Owner(team_id=row.team_id, user_id=row.user_id),
        task_name=row.task_name,
        start_time=_as_utc(row.start_time),
        id=row.id,
    )


def _to_completed_task(row: CurrentTask | DoneTask) -> CompletedTask:
    if row.end_time is None:
        raise StorageFailure(f"Task {row.id} has no end time")
    return CompletedTask(
        owner=Owner(team_id=row.team_id, user_id=row.user_id),
        task_name=row.task_name,
        start_time=_as_utc(row.start_time),
        end_time=_as_utc(row.end_time),
        id=row.id,
    )


def _to_current_row(record: SessionRecord) -> CurrentTask:
    end_time = record.end_time if isinstance(record, CompletedTask) else None
    return CurrentTask(
        id=record.id,
        team_id=record.owner.team_id,
        user_id=record.owner.user_id,
        task_name=record.task_name,
        start_time=_as_utc(record.start_time),
        end_time=_as_utc(end_time) if end_time is not None else None,
    )


def _to_done_row(task: CompletedTask) -> DoneTask:
    return DoneTask(
        id=task.id,
        team_id=task.owner.team_id,
        user_id=task.owner.user_id,
        task_name=task.task_name,
        start_time=_as_utc(task.start_time),
        end_time=_as_utc(task.end_time),
    )
