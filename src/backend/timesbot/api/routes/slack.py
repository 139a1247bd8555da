from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from timesbot.api import deps
from timesbot.core.config import Settings, get_settings
from timesbot.schemas.slack import SlashCommandForm
from timesbot.services.christmas import christmas_reply
from timesbot.services.owner_lock import OwnerLockTimeout
from timesbot.services.replies import private
from timesbot.services.session_store import StorageFailure
from timesbot.services.times_command import TimesCommandService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slack", tags=["slack"])

TIMES_COMMAND = "/times"
CHRISTMAS_TIMES_COMMAND = "/christmas_times"

FAILURE_TEXT = "Something went wrong on my side. Please try again in a moment."
BUSY_TEXT = "Still working on your previous command. Please try again in a moment."


@router.post("/commands", summary="Slack slash-command webhook")
def slash_command(
    form: SlashCommandForm = Depends(deps.get_slash_command),
    service: TimesCommandService = Depends(deps.get_times_service),
    settings: Settings = Depends(get_settings),
    clock: deps.Clock = Depends(deps.get_clock),
) -> dict[str, Any]:
    logger.info("Slash command %s from %s: %r", form.command, form.owner, form.text)

    if form.command == CHRISTMAS_TIMES_COMMAND:
        return christmas_reply(clock(), settings.utc_offset_minutes).to_slack_payload()
    if form.command != TIMES_COMMAND:
        return private(f"Unknown command {form.command}").to_slack_payload()

    try:
        reply = service.handle(form.owner, form.text)
    except OwnerLockTimeout as exc:
        logger.warning("%s", exc)
        reply = private(BUSY_TEXT)
    except StorageFailure:
        logger.exception("Storage failure while handling %r for %s", form.text, form.owner)
        reply = private(FAILURE_TEXT)
    except Exception:
        logger.exception("Unexpected failure while handling %r for %s", form.text, form.owner)
        reply = private(FAILURE_TEXT)
    return reply.to_slack_payload()
