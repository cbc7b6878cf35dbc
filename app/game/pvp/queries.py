from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.game.pvp.constants import (
    ASYNC_INBOX_LIMIT,
    ASYNC_INBOX_STATUSES,
    ASYNC_LIVE_STATUSES,
    MATCH_TYPE_ASYNC,
)
from app.game.pvp.errors import MatchNotFoundError
from app.game.pvp.matches_internal import (
    _build_match_snapshot,
    _expire_async_match_if_due,
    _get_match_for_participant_locked,
    _load_players,
    _require_participant,
)
from app.game.pvp.types import AsyncInboxEntry, PvpMatchSnapshot


async def get_match_snapshot_for_user(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    match_type: str,
    now_utc: datetime,
) -> PvpMatchSnapshot:
    if match_type == MATCH_TYPE_ASYNC:
        # Async reads take the row lock so a due expiry is applied on access.
        match = await _get_match_for_participant_locked(
            session,
            match_id=match_id,
            user_id=user_id,
            match_type=match_type,
        )
        if _expire_async_match_if_due(match, now_utc=now_utc):
            await session.flush()
        return _build_match_snapshot(match)

    match = await PvpMatchesRepo.get_by_id(session, match_id)
    if match is None or match.match_type != match_type:
        raise MatchNotFoundError
    _require_participant(match, user_id=user_id)
    return _build_match_snapshot(match)


async def list_async_inbox(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> list[AsyncInboxEntry]:
    matches = await PvpMatchesRepo.list_for_user_by_statuses(
        session,
        user_id=user_id,
        match_type=MATCH_TYPE_ASYNC,
        statuses=ASYNC_INBOX_STATUSES,
        limit=ASYNC_INBOX_LIMIT,
    )
    entries: list[AsyncInboxEntry] = []
    for match in matches:
        if (
            match.status in ASYNC_LIVE_STATUSES
            and match.expires_at is not None
            and match.expires_at <= now_utc
        ):
            continue
        players = _load_players(match)
        opponent_user_id = next(
            (participant_id for participant_id in match.participant_ids if participant_id != user_id),
            None,
        )
        me = players.get(user_id)
        opponent = players.get(opponent_user_id) if opponent_user_id is not None else None
        entries.append(
            AsyncInboxEntry(
                match_id=match.id,
                challenge_id=match.challenge_id,
                status=match.status,
                created_at=match.created_at,
                expires_at=match.expires_at,
                opponent_user_id=opponent_user_id,
                opponent_display_name=opponent.display_name if opponent is not None else None,
                opponent_email=opponent.email if opponent is not None else None,
                my_submitted=me is not None and me.has_submitted,
                opponent_submitted=opponent is not None and opponent.has_submitted,
                winner_user_id=match.winner_user_id,
            )
        )
    return entries
