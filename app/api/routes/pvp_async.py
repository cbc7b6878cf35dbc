from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Request

from app.game.pvp.constants import MATCH_TYPE_ASYNC
from app.game.pvp.service import PvpMatchService

from .pvp_helpers import (
    HANDLED_ERRORS,
    _enforce_rate_limit,
    _http_error_for,
    _inbox_entry_as_response,
    _match_as_response,
    _require_caller,
)
from .pvp_models import (
    AsyncInboxResponse,
    MatchResponse,
    StartResponse,
    SubmitAnswersRequest,
    SubmitResponse,
)

router = APIRouter(prefix="/pvp/async", tags=["pvp", "async"])


@router.get("/inbox", response_model=AsyncInboxResponse)
async def get_async_inbox(request: Request) -> AsyncInboxResponse:
    user_id = _require_caller(request)
    await _enforce_rate_limit(user_id=user_id, action="async_inbox")
    try:
        entries = await PvpMatchService.list_async_inbox(
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return AsyncInboxResponse(matches=[_inbox_entry_as_response(entry) for entry in entries])


@router.get("/{match_id}", response_model=MatchResponse)
async def get_async_match(match_id: UUID, request: Request) -> MatchResponse:
    user_id = _require_caller(request)
    try:
        snapshot = await PvpMatchService.get_match_snapshot(
            match_id=match_id,
            user_id=user_id,
            match_type=MATCH_TYPE_ASYNC,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return _match_as_response(snapshot, viewer_user_id=user_id)


@router.post("/{match_id}/start", response_model=StartResponse)
async def start_async_match(match_id: UUID, request: Request) -> StartResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.start_async_match(
            match_id=match_id,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return StartResponse(
        match=_match_as_response(result.snapshot, viewer_user_id=user_id),
        started_now=result.started_now,
        generation_pending=False,
    )


@router.post("/{match_id}/submit", response_model=SubmitResponse)
async def submit_async_match(
    match_id: UUID,
    payload: SubmitAnswersRequest,
    request: Request,
) -> SubmitResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.submit_async_match(
            match_id=match_id,
            user_id=user_id,
            selected_answers=payload.selected_answers,
            time_taken_seconds=payload.time_taken_seconds,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return SubmitResponse(
        match=_match_as_response(result.snapshot, viewer_user_id=user_id),
        completed_now=result.completed_now,
        waiting_for_opponent=result.waiting_for_opponent,
        idempotent_replay=result.idempotent_replay,
    )
