from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.pvp_challenges import PvpChallenge
from app.db.repo.pvp_challenges_repo import PvpChallengesRepo
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.db.repo.users_repo import UsersRepo
from app.game.pvp.async_matches import create_async_match
from app.game.pvp.constants import (
    CHALLENGE_INBOX_LIMIT,
    CHALLENGE_MODE_ASYNC,
    CHALLENGE_MODE_SYNC,
    CHALLENGE_STATUS_ACCEPTED,
    CHALLENGE_STATUS_DECLINED,
    CHALLENGE_STATUS_EXPIRED,
    CHALLENGE_STATUS_PENDING,
    MATCH_STATUS_READY,
    MATCH_TYPE_SYNC,
)
from app.game.pvp.errors import (
    ChallengeExistsError,
    ChallengeForbiddenError,
    ChallengeNotFoundError,
    ChallengeNotPendingError,
    InvalidChallengeError,
)
from app.game.pvp.matches_internal import (
    _build_match_row,
    _build_match_snapshot,
    _build_player_entry,
    _lock_users,
)
from app.game.pvp.types import (
    ChallengeAcceptResult,
    ChallengeInbox,
    ChallengeSnapshot,
    MatchQuestion,
)

logger = structlog.get_logger(__name__)

CHALLENGE_MODES = frozenset({CHALLENGE_MODE_SYNC, CHALLENGE_MODE_ASYNC})


def _build_challenge_snapshot(challenge: PvpChallenge) -> ChallengeSnapshot:
    return ChallengeSnapshot(
        challenge_id=challenge.id,
        challenger_user_id=challenge.challenger_user_id,
        challenged_user_id=challenge.challenged_user_id,
        mode=challenge.mode,
        status=challenge.status,
        created_at=challenge.created_at,
        expires_at=challenge.expires_at,
        responded_at=challenge.responded_at,
        match_id=challenge.match_id,
    )


def _expire_challenge_if_due(challenge: PvpChallenge, *, now_utc: datetime) -> bool:
    if challenge.status != CHALLENGE_STATUS_PENDING or challenge.expires_at > now_utc:
        return False
    challenge.status = CHALLENGE_STATUS_EXPIRED
    challenge.updated_at = now_utc
    logger.info("pvp_challenge_expired", challenge_id=str(challenge.id))
    return True


async def create_challenge(
    session: AsyncSession,
    *,
    challenger_user_id: int,
    challenged_user_id: int,
    mode: str,
    now_utc: datetime,
) -> ChallengeSnapshot:
    if challenger_user_id == challenged_user_id:
        raise InvalidChallengeError
    if mode not in CHALLENGE_MODES:
        raise InvalidChallengeError

    # Both profile rows are locked in id order, serializing concurrent
    # creates between the same pair.
    await _lock_users(session, user_ids=(challenger_user_id, challenged_user_id))

    pending = await PvpChallengesRepo.get_pending_between(
        session,
        first_user_id=challenger_user_id,
        second_user_id=challenged_user_id,
    )
    if pending is not None and not _expire_challenge_if_due(pending, now_utc=now_utc):
        raise ChallengeExistsError

    challenge = await PvpChallengesRepo.create(
        session,
        challenge=PvpChallenge(
            id=uuid4(),
            challenger_user_id=challenger_user_id,
            challenged_user_id=challenged_user_id,
            mode=mode,
            status=CHALLENGE_STATUS_PENDING,
            match_id=None,
            created_at=now_utc,
            updated_at=now_utc,
            responded_at=None,
            expires_at=now_utc + timedelta(seconds=get_settings().pvp_challenge_ttl_seconds),
        ),
    )
    logger.info(
        "pvp_challenge_created",
        challenge_id=str(challenge.id),
        challenger_user_id=challenger_user_id,
        challenged_user_id=challenged_user_id,
        mode=mode,
    )
    return _build_challenge_snapshot(challenge)


async def _lock_challenge_for_response(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> PvpChallenge:
    challenge = await PvpChallengesRepo.get_by_id_for_update(session, challenge_id)
    if challenge is None:
        raise ChallengeNotFoundError
    if challenge.challenged_user_id != user_id:
        raise ChallengeForbiddenError
    if _expire_challenge_if_due(challenge, now_utc=now_utc):
        await session.flush()
        return challenge
    if challenge.status != CHALLENGE_STATUS_PENDING:
        raise ChallengeNotPendingError
    return challenge


async def check_challenge_acceptable(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> ChallengeSnapshot:
    """Guard pass run before generating questions for an async acceptance.

    A challenge found past its deadline is flipped to expired and returned;
    callers report it as no longer pending once this commits.
    """
    challenge = await _lock_challenge_for_response(
        session,
        challenge_id=challenge_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    return _build_challenge_snapshot(challenge)


async def accept_challenge(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    user_id: int,
    now_utc: datetime,
    questions: tuple[MatchQuestion, ...] | None = None,
) -> ChallengeAcceptResult:
    challenge = await _lock_challenge_for_response(
        session,
        challenge_id=challenge_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    if challenge.status == CHALLENGE_STATUS_EXPIRED:
        return ChallengeAcceptResult(challenge=_build_challenge_snapshot(challenge))

    challenger_user_id = challenge.challenger_user_id
    challenged_user_id = challenge.challenged_user_id
    if challenge.mode == CHALLENGE_MODE_ASYNC:
        if not questions:
            raise InvalidChallengeError
        match = await create_async_match(
            session,
            challenger_user_id=challenger_user_id,
            challenged_user_id=challenged_user_id,
            questions=questions,
            now_utc=now_utc,
            challenge_id=challenge.id,
        )
    else:
        users = await _lock_users(session, user_ids=(challenger_user_id, challenged_user_id))
        participant_ids = (challenger_user_id, challenged_user_id)
        match = await PvpMatchesRepo.create(
            session,
            match=_build_match_row(
                match_type=MATCH_TYPE_SYNC,
                status=MATCH_STATUS_READY,
                created_by_user_id=challenger_user_id,
                players={
                    participant_id: _build_player_entry(
                        users.get(participant_id),
                        user_id=participant_id,
                        joined_at=now_utc,
                    )
                    for participant_id in participant_ids
                },
                participant_ids=participant_ids,
                now_utc=now_utc,
                challenge_id=challenge.id,
            ),
        )
        await UsersRepo.set_active_pvp_match(
            session,
            user_ids=participant_ids,
            match_id=match.id,
        )

    challenge.status = CHALLENGE_STATUS_ACCEPTED
    challenge.match_id = match.id
    challenge.responded_at = now_utc
    challenge.updated_at = now_utc
    await session.flush()
    logger.info(
        "pvp_challenge_accepted",
        challenge_id=str(challenge.id),
        match_id=str(match.id),
        mode=challenge.mode,
    )
    return ChallengeAcceptResult(
        challenge=_build_challenge_snapshot(challenge),
        match=_build_match_snapshot(match),
    )


async def decline_challenge(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> ChallengeSnapshot:
    challenge = await _lock_challenge_for_response(
        session,
        challenge_id=challenge_id,
        user_id=user_id,
        now_utc=now_utc,
    )
    if challenge.status == CHALLENGE_STATUS_EXPIRED:
        return _build_challenge_snapshot(challenge)

    challenge.status = CHALLENGE_STATUS_DECLINED
    challenge.responded_at = now_utc
    challenge.updated_at = now_utc
    await session.flush()
    logger.info("pvp_challenge_declined", challenge_id=str(challenge.id))
    return _build_challenge_snapshot(challenge)


async def list_challenge_inbox(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> ChallengeInbox:
    challenges = await PvpChallengesRepo.list_pending_for_user(
        session,
        user_id=user_id,
        limit=CHALLENGE_INBOX_LIMIT,
    )
    inbox = ChallengeInbox()
    for challenge in challenges:
        if challenge.expires_at <= now_utc:
            continue
        snapshot = _build_challenge_snapshot(challenge)
        if challenge.challenged_user_id == user_id:
            inbox.incoming.append(snapshot)
        else:
            inbox.outgoing.append(snapshot)
    return inbox
