from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pvp_history_entries import PvpHistoryEntry
from app.db.models.pvp_matches import PvpMatch
from app.db.repo.pvp_history_repo import PvpHistoryRepo
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.game.pvp.constants import (
    HISTORY_DEFAULT_PAGE_SIZE,
    HISTORY_MAX_PAGE_SIZE,
    OUTCOME_DRAW,
    OUTCOME_LOSS,
    OUTCOME_WIN,
    WINNER_REASON_TIE,
)
from app.game.pvp.errors import InvalidSubmissionError
from app.game.pvp.types import HistoryEntryView, HistoryPage, PlayerEntry


CURSOR_SEPARATOR = "|"


def _outcome_for(*, winner_user_id: int | None, user_id: int) -> str:
    if winner_user_id is None:
        return OUTCOME_DRAW
    return OUTCOME_WIN if winner_user_id == user_id else OUTCOME_LOSS


def build_history_entry(
    *,
    match_id: UUID,
    match_type: str,
    players: Mapping[int, PlayerEntry],
    question_count: int,
    my_user_id: int,
    opponent_user_id: int | None,
    winner_user_id: int | None,
    winner_reason: str | None,
    completed_at: datetime,
) -> HistoryEntryView:
    me = players.get(my_user_id)
    opponent = players.get(opponent_user_id) if opponent_user_id is not None else None

    def _total(player: PlayerEntry | None) -> int:
        if player is None or player.total is None:
            return question_count
        return player.total

    return HistoryEntryView(
        match_id=match_id,
        match_type=match_type,
        opponent_user_id=opponent_user_id,
        opponent_display_name=opponent.display_name if opponent is not None else None,
        opponent_email=opponent.email if opponent is not None else None,
        my_score=int(me.score or 0) if me is not None else 0,
        my_total=_total(me),
        my_time_taken_seconds=float(me.time_taken_seconds or 0) if me is not None else 0.0,
        opponent_score=int(opponent.score or 0) if opponent is not None else 0,
        opponent_total=_total(opponent),
        opponent_time_taken_seconds=(
            float(opponent.time_taken_seconds or 0) if opponent is not None else 0.0
        ),
        winner_user_id=winner_user_id,
        winner_reason=winner_reason or WINNER_REASON_TIE,
        outcome=_outcome_for(winner_user_id=winner_user_id, user_id=my_user_id),
        completed_at=completed_at,
    )


def _history_entry_values(
    entry: HistoryEntryView, *, user_id: int, created_at: datetime
) -> dict[str, object]:
    return {
        "user_id": user_id,
        "match_id": entry.match_id,
        "match_type": entry.match_type,
        "opponent_user_id": entry.opponent_user_id,
        "opponent_display_name": entry.opponent_display_name,
        "opponent_email": entry.opponent_email,
        "my_score": entry.my_score,
        "my_total": entry.my_total,
        "my_time_taken_seconds": entry.my_time_taken_seconds,
        "opponent_score": entry.opponent_score,
        "opponent_total": entry.opponent_total,
        "opponent_time_taken_seconds": entry.opponent_time_taken_seconds,
        "winner_user_id": entry.winner_user_id,
        "winner_reason": entry.winner_reason,
        "outcome": entry.outcome,
        "completed_at": entry.completed_at,
        "created_at": created_at,
    }


async def record_match_history(
    session: AsyncSession,
    *,
    match: PvpMatch,
    players: Mapping[int, PlayerEntry],
    completed_at: datetime,
) -> int:
    """Write one ledger entry per participant, keyed by (user, match).

    An entry that already exists is left untouched, so a re-run of the
    completing transaction never produces a second row.
    """
    first_user_id, second_user_id = match.participant_ids
    question_count = len(match.questions or [])
    written = 0
    for my_user_id, opponent_user_id in (
        (first_user_id, second_user_id),
        (second_user_id, first_user_id),
    ):
        entry = build_history_entry(
            match_id=match.id,
            match_type=match.match_type,
            players=players,
            question_count=question_count,
            my_user_id=my_user_id,
            opponent_user_id=opponent_user_id,
            winner_user_id=match.winner_user_id,
            winner_reason=match.winner_reason,
            completed_at=completed_at,
        )
        inserted = await PvpHistoryRepo.insert_if_absent(
            session,
            values=_history_entry_values(entry, user_id=my_user_id, created_at=completed_at),
        )
        written += int(inserted)
    return written


def _entry_from_row(row: PvpHistoryEntry) -> HistoryEntryView:
    return HistoryEntryView(
        match_id=row.match_id,
        match_type=row.match_type,
        opponent_user_id=row.opponent_user_id,
        opponent_display_name=row.opponent_display_name,
        opponent_email=row.opponent_email,
        my_score=row.my_score,
        my_total=row.my_total,
        my_time_taken_seconds=row.my_time_taken_seconds,
        opponent_score=row.opponent_score,
        opponent_total=row.opponent_total,
        opponent_time_taken_seconds=row.opponent_time_taken_seconds,
        winner_user_id=row.winner_user_id,
        winner_reason=row.winner_reason or WINNER_REASON_TIE,
        outcome=row.outcome,
        completed_at=row.completed_at,
    )


def _entry_from_match(match: PvpMatch, *, user_id: int) -> HistoryEntryView:
    # Imported lazily: matches_internal depends on this module.
    from app.game.pvp.matches_internal import _load_players

    opponent_user_id = next(
        (participant_id for participant_id in match.participant_ids if participant_id != user_id),
        None,
    )
    return build_history_entry(
        match_id=match.id,
        match_type=match.match_type,
        players=_load_players(match),
        question_count=len(match.questions or []),
        my_user_id=user_id,
        opponent_user_id=opponent_user_id,
        winner_user_id=match.winner_user_id,
        winner_reason=match.winner_reason,
        completed_at=match.completed_at or match.created_at,
    )


def encode_history_cursor(entry: HistoryEntryView) -> str:
    return f"{entry.completed_at.isoformat()}{CURSOR_SEPARATOR}{entry.match_id}"


def decode_history_cursor(cursor: str | None) -> tuple[datetime, UUID] | None:
    if not cursor:
        return None
    raw_completed_at, separator, raw_match_id = cursor.partition(CURSOR_SEPARATOR)
    if not separator:
        raise InvalidSubmissionError
    try:
        completed_at = datetime.fromisoformat(raw_completed_at)
        match_id = UUID(raw_match_id)
    except ValueError as exc:
        raise InvalidSubmissionError from exc
    if completed_at.tzinfo is None:
        raise InvalidSubmissionError
    return completed_at, match_id


def _sort_key(entry: HistoryEntryView) -> tuple[datetime, str]:
    return entry.completed_at, str(entry.match_id)


async def list_history(
    session: AsyncSession,
    *,
    user_id: int,
    cursor: str | None = None,
    limit: int = HISTORY_DEFAULT_PAGE_SIZE,
) -> HistoryPage:
    """Newest-first history merged from the ledger and completed match rows.

    A ledger row wins over a derived entry for the same match id. Both
    sources are read past the same cursor with one extra row each, so the
    merged page is exact.
    """
    resolved_limit = min(HISTORY_MAX_PAGE_SIZE, max(1, int(limit)))
    before = decode_history_cursor(cursor)

    ledger_rows = await PvpHistoryRepo.list_page_for_user(
        session,
        user_id=user_id,
        before=before,
        limit=resolved_limit + 1,
    )
    completed_matches = await PvpMatchesRepo.list_completed_for_user_page(
        session,
        user_id=user_id,
        before=before,
        limit=resolved_limit + 1,
    )

    merged: dict[UUID, HistoryEntryView] = {}
    for row in ledger_rows:
        merged[row.match_id] = _entry_from_row(row)
    for match in completed_matches:
        if match.id in merged:
            continue
        merged[match.id] = _entry_from_match(match, user_id=user_id)

    ordered = sorted(merged.values(), key=_sort_key, reverse=True)
    page = ordered[:resolved_limit]
    has_more = len(ordered) > resolved_limit
    return HistoryPage(
        entries=page,
        next_cursor=encode_history_cursor(page[-1]) if has_more and page else None,
        has_more=has_more,
    )
