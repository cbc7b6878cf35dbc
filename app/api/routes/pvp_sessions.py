from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Request

from app.game.pvp.constants import MATCH_TYPE_SYNC
from app.game.pvp.service import PvpMatchService

from .pvp_helpers import HANDLED_ERRORS, _http_error_for, _match_as_response, _require_caller
from .pvp_models import (
    CreateOrResumeResponse,
    JoinResponse,
    MatchResponse,
    StartResponse,
    SubmitAnswersRequest,
    SubmitResponse,
)

router = APIRouter(prefix="/pvp/sessions", tags=["pvp", "sessions"])


@router.post("", response_model=CreateOrResumeResponse)
async def create_or_resume_session(request: Request) -> CreateOrResumeResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.create_or_resume_sync_match(
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return CreateOrResumeResponse(
        match=_match_as_response(result.snapshot, viewer_user_id=user_id),
        resumed=result.resumed,
    )


@router.get("/{match_id}", response_model=MatchResponse)
async def get_session(match_id: UUID, request: Request) -> MatchResponse:
    user_id = _require_caller(request)
    try:
        snapshot = await PvpMatchService.get_match_snapshot(
            match_id=match_id,
            user_id=user_id,
            match_type=MATCH_TYPE_SYNC,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return _match_as_response(snapshot, viewer_user_id=user_id)


@router.post("/{match_id}/join", response_model=JoinResponse)
async def join_session(match_id: UUID, request: Request) -> JoinResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.join_sync_match(
            match_id=match_id,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return JoinResponse(
        match=_match_as_response(result.snapshot, viewer_user_id=user_id),
        joined_now=result.joined_now,
    )


@router.post("/{match_id}/start", response_model=StartResponse)
async def start_session(match_id: UUID, request: Request) -> StartResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.start_sync_match(
            match_id=match_id,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return StartResponse(
        match=_match_as_response(result.snapshot, viewer_user_id=user_id),
        started_now=result.started_now,
        generation_pending=result.generation_pending,
    )


@router.post("/{match_id}/submit", response_model=SubmitResponse)
async def submit_session(
    match_id: UUID,
    payload: SubmitAnswersRequest,
    request: Request,
) -> SubmitResponse:
    user_id = _require_caller(request)
    try:
        result = await PvpMatchService.submit_sync_match(
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
