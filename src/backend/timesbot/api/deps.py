from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Generator
from functools import lru_cache
from typing import Callable
from urllib.parse import parse_qsl

from fastapi import Depends, HTTPException, Request, status
from pydantic import ValidationError
from slack_sdk.signature import SignatureVerifier
from sqlalchemy.orm import Session

from timesbot.core.config import Settings, get_settings
from timesbot.core.redis import get_redis_client
from timesbot.db.session import SessionLocal
from timesbot.schemas.slack import SlashCommandForm
from timesbot.services.owner_lock import OwnerLockRegistry
from timesbot.services.report_context import ReportContextStore
from timesbot.services.session_store import SessionStore
from timesbot.services.times_command import TimesCommandService

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def get_clock() -> Clock:
    return _utcnow


@lru_cache(maxsize=1)
def get_owner_locks() -> OwnerLockRegistry:
    settings = get_settings()
    return OwnerLockRegistry(get_redis_client(), timeout=settings.owner_lock_timeout_seconds)


@lru_cache(maxsize=1)
def get_report_contexts() -> ReportContextStore:
    settings = get_settings()
    return ReportContextStore(get_redis_client(), ttl=dt.timedelta(hours=settings.report_context_ttl_hours))


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_times_service(
    store: SessionStore = Depends(get_session_store),
    locks: OwnerLockRegistry = Depends(get_owner_locks),
    contexts: ReportContextStore = Depends(get_report_contexts),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> TimesCommandService:
    return TimesCommandService(store, locks, contexts, settings=settings, clock=clock)


async def get_slash_command(request: Request, settings: Settings = Depends(get_settings)) -> SlashCommandForm:
    """Read the slash-command form, checking Slack's request signature when a secret is configured."""
    body = await request.body()
    if settings.slack_signing_secret:
        verifier = SignatureVerifier(settings.slack_signing_secret)
        if not verifier.is_valid_request(body, dict(request.headers)):
            logger.warning("Rejected slash command with an invalid Slack signature.")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Slack signature.")

    try:
        fields = dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
        return SlashCommandForm(**fields)
    except (UnicodeDecodeError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed slash command.") from exc
