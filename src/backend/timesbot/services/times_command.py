from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from timesbot.core.config import CLEAR_OPEN_TASK, Settings, get_settings
from timesbot.services.accounting import (
    CompletedTask,
    InvalidBackDate,
    Owner,
    clock_out as close_open_task,
    display_state,
    start_task,
)
from timesbot.services.command_parser import fixed_zone, parse_command
from timesbot.services.owner_lock import OwnerLockRegistry
from timesbot.services.replies import SlackAttachment, SlackReply, private, public
from timesbot.services.report import summarize
from timesbot.services.report_context import REPORT_ACTION, ReportContextStore
from timesbot.services.session_store import SessionStore

logger = logging.getLogger(__name__)

STATUS_TEXT = ""
CLOCK_OUT_TEXT = "clock out"
CLEAR_TEXT = "clear"

NOTHING_WORKED_TEXT = "You haven't worked today yet :sleeping:"
INVALID_BACK_DATE_TEXT = "You can't start earlier than the task you're working on now."
USAGE_TEXT = "\n".join(
    [
        ":question: How to use `/times`",
        "`/times <task>` start working on a task",
        "`/times <task> back 9:30` you started it at 9:30",
        "`/times <task> back 15` you started it 15 minutes ago",
        "`/times` show what you are working on",
        "`/times clock out` finish the day and see the totals",
        "`/times clear` forget today's tasks",
    ]
)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class TimesCommandService:
    """Handle the ``/times`` slash command for one owner at a time."""

    def __init__(
        self,
        store: SessionStore,
        locks: OwnerLockRegistry,
        contexts: ReportContextStore,
        settings: Settings | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.contexts = contexts
        self.settings = settings or get_settings()
        self.clock = clock

    def handle(self, owner: Owner, text: str | None) -> SlackReply:
        normalized = (text or "").strip()
        if normalized == STATUS_TEXT:
            return self.show_status(owner)
        if normalized == CLOCK_OUT_TEXT:
            return self.clock_out(owner)
        if normalized == CLEAR_TEXT:
            if self.settings.clear_mode == CLEAR_OPEN_TASK:
                return self.discard_open_task(owner)
            return self.discard_all_today(owner)
        return self.start(owner, normalized)

    def show_status(self, owner: Owner) -> SlackReply:
        task_name = display_state(self.store.find_latest_open(owner))
        if task_name is None:
            return private(USAGE_TEXT)
        return public(f'Now working on "{task_name}".')

    def start(self, owner: Owner, text: str) -> SlackReply:
        now = self.clock()
        command = parse_command(text, now, self.settings.utc_offset_minutes)
        with self.locks.hold(owner):
            open_tasks = self.store.find_all_open(owner)
            current = open_tasks[-1] if open_tasks else None
            try:
                result = start_task(current, owner, command, now)
            except InvalidBackDate as exc:
                logger.info(
                    "Rejected back-dated start for %s: %s precedes %s",
                    owner,
                    exc.requested.isoformat(),
                    exc.open_since.isoformat(),
                )
                return public(INVALID_BACK_DATE_TEXT)

            # Older open rows end where the newest one began.
            stale = [task.close(current.start_time) for task in open_tasks[:-1]] if current else []
            if stale:
                logger.warning("Closing %d stale open tasks for %s", len(stale), owner)
            records = stale + [record for record in (result.closed, result.next) if record is not None]
            self.store.save(*records)

        if result.closed is not None:
            logger.info(
                "Closed %r for %s after %d ms",
                result.closed.task_name,
                owner,
                result.closed.duration_ms,
            )
        logger.info("Started %r for %s at %s", result.next.task_name, owner, result.next.start_time.isoformat())

        if command.is_back_dated:
            since = result.next.start_time.astimezone(fixed_zone(self.settings.utc_offset_minutes))
            return public(f'⏰ Working on "{command.task_name}" since {since:%H:%M}!')
        return public(f'⏰ Starting "{command.task_name}"!')

    def clock_out(self, owner: Owner) -> SlackReply:
        now = self.clock()
        with self.locks.hold(owner):
            open_tasks = self.store.find_all_open(owner)
            try:
                closed_now = [closed for closed in (close_open_task(task, now) for task in open_tasks) if closed]
            except InvalidBackDate as exc:
                logger.warning("Open task of %s starts in the future (%s)", owner, exc.open_since.isoformat())
                return public(INVALID_BACK_DATE_TEXT)
            completed = self.store.find_session_closed(owner) + closed_now
            self.store.archive(owner, completed)

        logger.info("Clocked out %s with %d tasks", owner, len(completed))
        if not completed:
            return public(
                "Good work today :honey_pot:",
                SlackAttachment(text=NOTHING_WORKED_TEXT, color=self.settings.attachment_color),
            )

        attachments = [
            SlackAttachment(text=self._format_totals(completed), color=self.settings.attachment_color),
        ]
        context = self.contexts.create_context(owner, REPORT_ACTION)
        attachments.append(SlackAttachment(text=f"Report: {self.settings.report_base_url}/report/{context.id}"))
        return public("Good work today :honey_pot:", *attachments)

    def discard_open_task(self, owner: Owner) -> SlackReply:
        with self.locks.hold(owner):
            current = self.store.find_latest_open(owner)
            self.store.remove_open(owner)
        if current is None:
            return public("Nothing is running, nothing to drop.")
        logger.info("Discarded open task %r of %s", current.task_name, owner)
        return public(f'Dropped "{current.task_name}".')

    def discard_all_today(self, owner: Owner) -> SlackReply:
        with self.locks.hold(owner):
            removed = self.store.remove(owner)
        logger.info("Discarded %d records of today for %s", removed, owner)
        return public("Wiped it out like it never happened.")

    @staticmethod
    def _format_totals(completed: list[CompletedTask]) -> str:
        return "\n".join(
            f'"{task.task_name}" {task.total_time} ({task.rate}%)' for task in summarize(completed)
        )
