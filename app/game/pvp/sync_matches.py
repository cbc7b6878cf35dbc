from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.pvp_matches import PvpMatch
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.db.repo.users_repo import UsersRepo
from app.game.pvp.constants import (
    MATCH_STATUS_COMPLETED,
    MATCH_STATUS_IN_PROGRESS,
    MATCH_STATUS_READY,
    MATCH_STATUS_WAITING,
    MATCH_TYPE_SYNC,
    MAX_PARTICIPANTS,
    REUSABLE_MATCH_SCAN_LIMIT,
)
from app.game.pvp.errors import (
    MatchClosedError,
    MatchFullError,
    MatchNotEnoughPlayersError,
    MatchNotFoundError,
    MatchNotStartedError,
)
from app.game.pvp.matches_internal import (
    _apply_player_submission,
    _both_participants_submitted,
    _build_match_row,
    _build_match_snapshot,
    _build_player_entry,
    _complete_match,
    _get_match_for_participant_locked,
    _load_players,
    _lock_users,
    _store_players,
    _store_questions,
)
from app.game.pvp.types import (
    CreateOrResumeResult,
    JoinResult,
    MatchQuestion,
    StartResult,
    SubmitResult,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class GenerationClaim:
    """Outcome of the first start step: either a finished result or a lease token."""

    result: StartResult | None = None
    token: str | None = None


def _is_resumable(match: PvpMatch | None, *, user_id: int) -> bool:
    if match is None:
        return False
    if match.match_type != MATCH_TYPE_SYNC or match.status == MATCH_STATUS_COMPLETED:
        return False
    return user_id in match.participant_ids


async def create_or_resume_sync_match(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> CreateOrResumeResult:
    users = await _lock_users(session, user_ids=(user_id,))
    user = users.get(user_id)

    if user is not None and user.active_pvp_match_id is not None:
        active_match = await PvpMatchesRepo.get_by_id(session, user.active_pvp_match_id)
        if _is_resumable(active_match, user_id=user_id):
            return CreateOrResumeResult(snapshot=_build_match_snapshot(active_match), resumed=True)

    live_matches = await PvpMatchesRepo.list_live_for_user(
        session,
        user_id=user_id,
        match_type=MATCH_TYPE_SYNC,
        exclude_statuses=(MATCH_STATUS_COMPLETED,),
        limit=REUSABLE_MATCH_SCAN_LIMIT,
    )
    for candidate in live_matches:
        if _is_resumable(candidate, user_id=user_id):
            await UsersRepo.set_active_pvp_match(
                session,
                user_ids=(user_id,),
                match_id=candidate.id,
            )
            return CreateOrResumeResult(snapshot=_build_match_snapshot(candidate), resumed=True)

    match = await PvpMatchesRepo.create(
        session,
        match=_build_match_row(
            match_type=MATCH_TYPE_SYNC,
            status=MATCH_STATUS_WAITING,
            created_by_user_id=user_id,
            players={user_id: _build_player_entry(user, user_id=user_id, joined_at=now_utc)},
            participant_ids=(user_id,),
            now_utc=now_utc,
        ),
    )
    await UsersRepo.set_active_pvp_match(session, user_ids=(user_id,), match_id=match.id)
    logger.info("pvp_sync_match_created", match_id=str(match.id), user_id=user_id)
    return CreateOrResumeResult(snapshot=_build_match_snapshot(match), resumed=False)


async def join_sync_match(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> JoinResult:
    match = await PvpMatchesRepo.get_by_id_for_update(session, match_id)
    if match is None or match.match_type != MATCH_TYPE_SYNC:
        raise MatchNotFoundError
    if user_id in match.participant_ids:
        return JoinResult(snapshot=_build_match_snapshot(match), joined_now=False)
    if len(match.participant_ids) >= MAX_PARTICIPANTS:
        raise MatchFullError
    if match.status != MATCH_STATUS_WAITING:
        raise MatchClosedError

    users = await _lock_users(session, user_ids=(user_id,))
    players = _load_players(match)
    players[user_id] = _build_player_entry(users.get(user_id), user_id=user_id, joined_at=now_utc)
    _store_players(match, players)
    match.second_user_id = user_id
    match.status = MATCH_STATUS_READY
    match.updated_at = now_utc
    await UsersRepo.set_active_pvp_match(session, user_ids=(user_id,), match_id=match.id)
    await session.flush()

    logger.info("pvp_sync_match_joined", match_id=str(match.id), user_id=user_id)
    return JoinResult(snapshot=_build_match_snapshot(match), joined_now=True)


def _has_live_generation_lease(match: PvpMatch, *, now_utc: datetime) -> bool:
    if match.generation_claim_token is None or match.generation_claimed_at is None:
        return False
    lease = timedelta(seconds=get_settings().pvp_generation_lease_seconds)
    return match.generation_claimed_at + lease > now_utc


def _mark_in_progress(match: PvpMatch, *, now_utc: datetime) -> None:
    match.status = MATCH_STATUS_IN_PROGRESS
    match.started_at = match.started_at or now_utc
    match.generation_claim_token = None
    match.generation_claimed_at = None
    match.updated_at = now_utc


async def claim_sync_match_generation(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> GenerationClaim:
    """First start step: run the guards and take the generation lease if needed."""
    match = await _get_match_for_participant_locked(
        session,
        match_id=match_id,
        user_id=user_id,
        match_type=MATCH_TYPE_SYNC,
    )
    if match.questions and match.status != MATCH_STATUS_READY:
        return GenerationClaim(result=StartResult(snapshot=_build_match_snapshot(match)))
    if len(match.participant_ids) < MAX_PARTICIPANTS:
        raise MatchNotEnoughPlayersError
    if match.status == MATCH_STATUS_COMPLETED:
        raise MatchClosedError

    if match.questions:
        _mark_in_progress(match, now_utc=now_utc)
        await session.flush()
        return GenerationClaim(
            result=StartResult(snapshot=_build_match_snapshot(match), started_now=True)
        )

    if _has_live_generation_lease(match, now_utc=now_utc):
        return GenerationClaim(
            result=StartResult(snapshot=_build_match_snapshot(match), generation_pending=True)
        )

    token = uuid4().hex
    match.generation_claim_token = token
    match.generation_claimed_at = now_utc
    match.updated_at = now_utc
    await session.flush()
    logger.info("pvp_question_generation_claimed", match_id=str(match.id), user_id=user_id)
    return GenerationClaim(token=token)


async def commit_sync_match_questions(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    token: str,
    questions: tuple[MatchQuestion, ...],
    now_utc: datetime,
) -> StartResult:
    """Last start step: persist the generated set only while the lease still holds."""
    match = await _get_match_for_participant_locked(
        session,
        match_id=match_id,
        user_id=user_id,
        match_type=MATCH_TYPE_SYNC,
    )
    if match.generation_claim_token != token or match.questions:
        logger.info("pvp_generated_question_set_discarded", match_id=str(match.id))
        return StartResult(snapshot=_build_match_snapshot(match))

    _store_questions(match, questions)
    _mark_in_progress(match, now_utc=now_utc)
    await session.flush()
    logger.info(
        "pvp_sync_match_started",
        match_id=str(match.id),
        question_count=len(questions),
    )
    return StartResult(snapshot=_build_match_snapshot(match), started_now=True)


async def release_sync_match_generation(
    session: AsyncSession,
    *,
    match_id: UUID,
    token: str,
    now_utc: datetime,
) -> bool:
    match = await PvpMatchesRepo.get_by_id_for_update(session, match_id)
    if match is None or match.generation_claim_token != token:
        return False
    match.generation_claim_token = None
    match.generation_claimed_at = None
    match.updated_at = now_utc
    await session.flush()
    return True


async def submit_sync_match(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    selected_answers: dict[str, int],
    time_taken_seconds: float,
    now_utc: datetime,
) -> SubmitResult:
    match = await _get_match_for_participant_locked(
        session,
        match_id=match_id,
        user_id=user_id,
        match_type=MATCH_TYPE_SYNC,
    )
    if match.status in {MATCH_STATUS_WAITING, MATCH_STATUS_READY}:
        raise MatchNotStartedError
    if match.status == MATCH_STATUS_COMPLETED:
        raise MatchClosedError

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
        match_type=MATCH_TYPE_SYNC,
        user_id=user_id,
        score=players[user_id].score,
    )
    if not _both_participants_submitted(match, players):
        await session.flush()
        return SubmitResult(snapshot=_build_match_snapshot(match), waiting_for_opponent=True)

    await _complete_match(session, match=match, players=players, now_utc=now_utc)
    await session.flush()
    return SubmitResult(snapshot=_build_match_snapshot(match), completed_now=True)
