from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from timesbot.db.base import Base
from timesbot.models.base import TimestampMixin


class CurrentTask(TimestampMixin, Base):
    """A task recorded since the owner's last clock out.

    The row with ``end_time`` unset is the open task.
    """

    __tablename__ = "current_tasks"
    __table_args__ = (
        Index("ix_current_tasks_owner", "team_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    task_name: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<CurrentTask id={self.id} owner={self.team_id}/{self.user_id} name={self.task_name!r}>"


class DoneTask(TimestampMixin, Base):
    """A task archived by clock out; kept as reporting history."""

    __tablename__ = "done_tasks"
    __table_args__ = (
        Index("ix_done_tasks_owner_start", "team_id", "user_id", "start_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    task_name: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<DoneTask id={self.id} owner={self.team_id}/{self.user_id} name={self.task_name!r}>"
