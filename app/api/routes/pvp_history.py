from __future__ import annotations

from fastapi import APIRouter, Query, Request

from app.game.pvp.constants import HISTORY_DEFAULT_PAGE_SIZE, HISTORY_MAX_PAGE_SIZE
from app.game.pvp.service import PvpMatchService

from .pvp_helpers import HANDLED_ERRORS, _history_entry_as_response, _http_error_for, _require_caller
from .pvp_models import HistoryResponse

router = APIRouter(prefix="/pvp", tags=["pvp", "history"])


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    request: Request,
    limit: int = Query(default=HISTORY_DEFAULT_PAGE_SIZE, ge=1, le=HISTORY_MAX_PAGE_SIZE),
    cursor: str | None = Query(default=None, max_length=128),
) -> HistoryResponse:
    user_id = _require_caller(request)
    try:
        page = await PvpMatchService.list_history(user_id=user_id, cursor=cursor, limit=limit)
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return HistoryResponse(
        history=[_history_entry_as_response(entry) for entry in page.entries],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )
