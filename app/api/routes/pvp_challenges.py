from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Request

from app.game.pvp.service import PvpMatchService

from .pvp_helpers import (
    HANDLED_ERRORS,
    _challenge_as_response,
    _enforce_rate_limit,
    _http_error_for,
    _match_as_response,
    _require_caller,
)
from .pvp_models import (
    ChallengeAcceptResponse,
    ChallengeCreateRequest,
    ChallengeInboxResponse,
    ChallengeResponse,
)

router = APIRouter(prefix="/pvp/challenges", tags=["pvp", "challenges"])


@router.post("", response_model=ChallengeResponse)
async def create_challenge(payload: ChallengeCreateRequest, request: Request) -> ChallengeResponse:
    user_id = _require_caller(request)
    await _enforce_rate_limit(user_id=user_id, action="challenge_create")
    try:
        challenge = await PvpMatchService.create_challenge(
            challenger_user_id=user_id,
            challenged_user_id=payload.challenged_user_id,
            mode=payload.mode,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return _challenge_as_response(challenge)


@router.get("/inbox", response_model=ChallengeInboxResponse)
async def get_challenge_inbox(request: Request) -> ChallengeInboxResponse:
    user_id = _require_caller(request)
    try:
        inbox = await PvpMatchService.list_challenge_inbox(
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return ChallengeInboxResponse(
        incoming=[_challenge_as_response(item) for item in inbox.incoming],
        outgoing=[_challenge_as_response(item) for item in inbox.outgoing],
    )


@router.post("/{challenge_id}/accept", response_model=ChallengeAcceptResponse)
async def accept_challenge(challenge_id: UUID, request: Request) -> ChallengeAcceptResponse:
    user_id = _require_caller(request)
    await _enforce_rate_limit(user_id=user_id, action="challenge_accept")
    try:
        result = await PvpMatchService.accept_challenge(
            challenge_id=challenge_id,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return ChallengeAcceptResponse(
        challenge=_challenge_as_response(result.challenge),
        match=_match_as_response(result.match, viewer_user_id=user_id),
    )


@router.post("/{challenge_id}/decline", response_model=ChallengeResponse)
async def decline_challenge(challenge_id: UUID, request: Request) -> ChallengeResponse:
    user_id = _require_caller(request)
    try:
        challenge = await PvpMatchService.decline_challenge(
            challenge_id=challenge_id,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    except HANDLED_ERRORS as exc:
        raise _http_error_for(exc) from exc
    return _challenge_as_response(challenge)
