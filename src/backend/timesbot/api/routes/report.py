from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from timesbot.api import deps
from timesbot.core.config import Settings, get_settings
from timesbot.schemas.report import ReportRead, SummarizedTaskRead
from timesbot.services.report import earliest_window_start, summarize_windows
from timesbot.services.report_context import ReportContextStore
from timesbot.services.session_store import SessionStore, StorageFailure

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/report", tags=["report"])

EXPIRED_TEXT = "This report link has expired. Clock out again to get a new one."
INTERNAL_ERROR_TEXT = "An internal error occurred while building the report."


@router.get("/{token}", response_model=ReportRead)
def get_report(
    token: str,
    response: Response,
    contexts: ReportContextStore = Depends(deps.get_report_contexts),
    store: SessionStore = Depends(deps.get_session_store),
    settings: Settings = Depends(get_settings),
    clock: deps.Clock = Depends(deps.get_clock),
) -> ReportRead:
    context = contexts.get_context(token)
    if context is None:
        response.status_code = status.HTTP_404_NOT_FOUND
        return ReportRead(error_message=EXPIRED_TEXT)

    now = clock()
    offset = settings.utc_offset_minutes
    try:
        completed = store.find_completed_after(context.owner, earliest_window_start(now, offset))
    except StorageFailure:
        logger.exception("Unable to load the report of %s", context.owner)
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return ReportRead(error_message=INTERNAL_ERROR_TEXT)

    windows = summarize_windows(completed, now, offset)
    return ReportRead(
        generated_at=now,
        **{
            name: [SummarizedTaskRead.model_validate(task) for task in tasks]
            for name, tasks in windows.items()
        },
    )
