from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.pvp_matches import PvpMatch
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.game.pvp.constants import (
    ASYNC_LIVE_STATUSES,
    MATCH_STATUS_AWAITING_OPPONENT,
    MATCH_STATUS_COMPLETED,
    MATCH_STATUS_OPEN,
    MATCH_TYPE_ASYNC,
)
from app.game.pvp.errors import MatchClosedError
from app.game.pvp.matches_internal import (
    _apply_player_submission,
    _both_participants_submitted,
    _build_match_row,
    _build_match_snapshot,
    _build_player_entry,
    _complete_match,
    _expire_async_match_if_due,
    _get_match_for_participant_locked,
    _load_players,
    _lock_users,
    _store_players,
)
from app.game.pvp.types import MatchQuestion, PvpMatchSnapshot, StartResult, SubmitResult

logger = structlog.get_logger(__name__)


async def create_async_match(
    session: AsyncSession,
    *,
    challenger_user_id: int,
    challenged_user_id: int,
    questions: tuple[MatchQuestion, ...],
    now_utc: datetime,
    challenge_id: UUID | None = None,
) -> PvpMatch:
    users = await _lock_users(session, user_ids=(challenger_user_id, challenged_user_id))
    participant_ids = (challenger_user_id, challenged_user_id)
    players = {
        participant_id: _build_player_entry(
            users.get(participant_id),
            user_id=participant_id,
            joined_at=now_utc,
        )
        for participant_id in participant_ids
    }
    match = await PvpMatchesRepo.create(
        session,
        match=_build_match_row(
            match_type=MATCH_TYPE_ASYNC,
            status=MATCH_STATUS_OPEN,
            created_by_user_id=challenger_user_id,
            players=players,
            participant_ids=participant_ids,
            now_utc=now_utc,
            questions=questions,
            challenge_id=challenge_id,
            expires_at=now_utc + timedelta(seconds=get_settings().pvp_async_match_ttl_seconds),
        ),
    )
    logger.info(
        "pvp_async_match_created",
        match_id=str(match.id),
        challenge_id=str(challenge_id) if challenge_id is not None else None,
    )
    return match


async def _lock_async_match_and_expire(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> PvpMatch:
    match = await _get_match_for_participant_locked(
        session,
        match_id=match_id,
        user_id=user_id,
        match_type=MATCH_TYPE_ASYNC,
    )
    if _expire_async_match_if_due(match, now_utc=now_utc):
        await session.flush()
    return match


async def start_async_match(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> StartResult:
    """Record the caller's own start time; match-level status is untouched.

    An expired or forfeited match comes back as a snapshot with that status
    so the lazy expiry commits; callers turn it into the closed condition.
    """
    match = await _lock_async_match_and_expire(
        session,
        match_id=match_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    if match.status not in ASYNC_LIVE_STATUSES:
        return StartResult(snapshot=_build_match_snapshot(match))

    players = _load_players(match)
    player = players[user_id]
    if player.started_at is not None or player.has_submitted:
        return StartResult(snapshot=_build_match_snapshot(match))

    player.started_at = now_utc
    _store_players(match, players)
    match.started_at = match.started_at or now_utc
    match.updated_at = now_utc
    await session.flush()
    logger.info("pvp_async_match_started", match_id=str(match.id), user_id=user_id)
    return StartResult(snapshot=_build_match_snapshot(match), started_now=True)


async def submit_async_match(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    selected_answers: dict[str, int],
    time_taken_seconds: float,
    now_utc: datetime,
) -> SubmitResult:
    match = await _lock_async_match_and_expire(
        session,
        match_id=match_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    if match.status == MATCH_STATUS_COMPLETED:
        raise MatchClosedError
    if match.status not in ASYNC_LIVE_STATUSES:
        return SubmitResult(snapshot=_build_match_snapshot(match))

    players, replay = _apply_player_submission(
        match,
        user_id=user_id,
        selected_answers=selected_answers,
        time_taken_seconds=time_taken_seconds,
        now_utc=now_utc,
    )
    if replay:
        return SubmitResult(
            snapshot=_build_match_snapshot(match),
            waiting_for_opponent=True,
            idempotent_replay=True,
        )

    logger.info(
        "pvp_match_submitted",
        match_id=str(match.id),
        match_type=MATCH_TYPE_ASYNC,
        user_id=user_id,
        score=players[user_id].score,
    )
    if not _both_participants_submitted(match, players):
        match.status = MATCH_STATUS_AWAITING_OPPONENT
        await session.flush()
        return SubmitResult(snapshot=_build_match_snapshot(match), waiting_for_opponent=True)

    await _complete_match(session, match=match, players=players, now_utc=now_utc)
    await session.flush()
    return SubmitResult(snapshot=_build_match_snapshot(match), completed_now=True)


async def expire_async_match(
    session: AsyncSession,
    *,
    match_id: UUID,
    now_utc: datetime,
) -> PvpMatchSnapshot | None:
    match = await PvpMatchesRepo.get_by_id_for_update(session, match_id)
    if match is None or match.match_type != MATCH_TYPE_ASYNC:
        return None
    if _expire_async_match_if_due(match, now_utc=now_utc):
        await session.flush()
    return _build_match_snapshot(match)


async def expire_due_async_matches(
    session: AsyncSession,
    *,
    now_utc: datetime,
    batch_size: int,
) -> int:
    due_matches = await PvpMatchesRepo.list_async_due_for_expire_for_update(
        session,
        now_utc=now_utc,
        live_statuses=tuple(ASYNC_LIVE_STATUSES),
        limit=batch_size,
    )
    expired_total = 0
    for match in due_matches:
        if _expire_async_match_if_due(match, now_utc=now_utc):
            expired_total += 1
    if expired_total:
        await session.flush()
    return expired_total
