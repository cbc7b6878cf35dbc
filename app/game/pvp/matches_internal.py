from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pvp_matches import PvpMatch
from app.db.models.users import User
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.db.repo.users_repo import UsersRepo
from app.game.pvp.constants import (
    MATCH_STATUS_COMPLETED,
    MATCH_STATUS_EXPIRED,
    MATCH_STATUS_FORFEITED,
    MATCH_TYPE_ASYNC,
    is_async_closed_status,
)
from app.game.pvp.errors import MatchForbiddenError, MatchNotFoundError
from app.game.pvp.history import record_match_history
from app.game.pvp.scoring import compute_score, resolve_winner
from app.game.pvp.types import MatchQuestion, PlayerEntry, PvpMatchSnapshot

logger = structlog.get_logger(__name__)


def _dt_to_payload(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_payload(value: object) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _player_to_payload(player: PlayerEntry) -> dict[str, object]:
    return {
        "user_id": player.user_id,
        "display_name": player.display_name,
        "email": player.email,
        "joined_at": _dt_to_payload(player.joined_at),
        "started_at": _dt_to_payload(player.started_at),
        "submitted_at": _dt_to_payload(player.submitted_at),
        "selected_answers": (
            dict(player.selected_answers) if player.selected_answers is not None else None
        ),
        "score": player.score,
        "total": player.total,
        "time_taken_seconds": player.time_taken_seconds,
    }


def _player_from_payload(user_id: int, payload: Mapping[str, object]) -> PlayerEntry:
    selected_answers = payload.get("selected_answers")
    score = payload.get("score")
    total = payload.get("total")
    time_taken = payload.get("time_taken_seconds")
    joined_at = _dt_from_payload(payload.get("joined_at"))
    if joined_at is None:
        raise ValueError(f"player {user_id} has no joined_at")
    return PlayerEntry(
        user_id=user_id,
        display_name=payload.get("display_name"),  # type: ignore[arg-type]
        email=payload.get("email"),  # type: ignore[arg-type]
        joined_at=joined_at,
        started_at=_dt_from_payload(payload.get("started_at")),
        submitted_at=_dt_from_payload(payload.get("submitted_at")),
        selected_answers=(
            {str(key): int(value) for key, value in selected_answers.items()}
            if isinstance(selected_answers, Mapping)
            else None
        ),
        score=int(score) if score is not None else None,
        total=int(total) if total is not None else None,
        time_taken_seconds=float(time_taken) if time_taken is not None else None,
    )


def _question_to_payload(question: MatchQuestion) -> dict[str, object]:
    return {
        "id": question.question_id,
        "prompt": question.prompt,
        "choices": list(question.choices),
        "correct_choice_index": question.correct_choice_index,
        "explanation": question.explanation,
    }


def _question_from_payload(payload: Mapping[str, object]) -> MatchQuestion:
    return MatchQuestion(
        question_id=str(payload["id"]),
        prompt=str(payload["prompt"]),
        choices=tuple(str(choice) for choice in payload["choices"]),  # type: ignore[union-attr]
        correct_choice_index=int(payload["correct_choice_index"]),  # type: ignore[arg-type]
        explanation=str(payload.get("explanation") or ""),
    )


def _load_players(match: PvpMatch) -> dict[int, PlayerEntry]:
    return {
        int(user_id): _player_from_payload(int(user_id), payload)
        for user_id, payload in (match.players or {}).items()
    }


def _store_players(match: PvpMatch, players: Mapping[int, PlayerEntry]) -> None:
    # Reassign a fresh dict so the JSONB column is flagged dirty.
    match.players = {str(user_id): _player_to_payload(player) for user_id, player in players.items()}


def _load_questions(match: PvpMatch) -> tuple[MatchQuestion, ...]:
    return tuple(_question_from_payload(item) for item in (match.questions or []))


def _store_questions(match: PvpMatch, questions: tuple[MatchQuestion, ...]) -> None:
    match.questions = [_question_to_payload(question) for question in questions]


async def _lock_users(session: AsyncSession, *, user_ids: Sequence[int]) -> dict[int, User]:
    """Create missing profile rows, then lock them in ascending id order."""
    ordered_ids = sorted({int(user_id) for user_id in user_ids})
    await UsersRepo.ensure_exists(session, user_ids=ordered_ids)
    users: dict[int, User] = {}
    for user_id in ordered_ids:
        user = await UsersRepo.get_by_id_for_update(session, user_id)
        if user is not None:
            users[user_id] = user
    return users


def _build_player_entry(user, *, user_id: int, joined_at: datetime) -> PlayerEntry:  # noqa: ANN001
    return PlayerEntry(
        user_id=user_id,
        display_name=getattr(user, "display_name", None),
        email=getattr(user, "email", None),
        joined_at=joined_at,
    )


def _build_match_row(
    *,
    match_type: str,
    status: str,
    created_by_user_id: int,
    players: Mapping[int, PlayerEntry],
    participant_ids: tuple[int, ...],
    now_utc: datetime,
    questions: tuple[MatchQuestion, ...] = (),
    challenge_id: UUID | None = None,
    expires_at: datetime | None = None,
) -> PvpMatch:
    match = PvpMatch(
        id=uuid4(),
        match_type=match_type,
        status=status,
        created_by_user_id=created_by_user_id,
        first_user_id=participant_ids[0],
        second_user_id=participant_ids[1] if len(participant_ids) > 1 else None,
        players={},
        questions=[],
        challenge_id=challenge_id,
        expires_at=expires_at,
        started_at=None,
        completed_at=None,
        closed_at=None,
        winner_user_id=None,
        winner_reason=None,
        generation_claim_token=None,
        generation_claimed_at=None,
        created_at=now_utc,
        updated_at=now_utc,
    )
    _store_players(match, players)
    _store_questions(match, questions)
    return match


def _build_match_snapshot(match: PvpMatch) -> PvpMatchSnapshot:
    return PvpMatchSnapshot(
        match_id=match.id,
        match_type=match.match_type,
        status=match.status,
        created_by_user_id=match.created_by_user_id,
        created_at=match.created_at,
        participant_ids=match.participant_ids,
        players=_load_players(match),
        questions=_load_questions(match),
        started_at=match.started_at,
        completed_at=match.completed_at,
        winner_user_id=match.winner_user_id,
        winner_reason=match.winner_reason,
        challenge_id=match.challenge_id,
        expires_at=match.expires_at,
    )


async def _get_match_for_participant_locked(
    session: AsyncSession,
    *,
    match_id: UUID,
    user_id: int,
    match_type: str,
) -> PvpMatch:
    match = await PvpMatchesRepo.get_by_id_for_update(session, match_id)
    if match is None or match.match_type != match_type:
        raise MatchNotFoundError
    _require_participant(match, user_id=user_id)
    return match


def _require_participant(match: PvpMatch, *, user_id: int) -> None:
    if user_id not in match.participant_ids:
        raise MatchForbiddenError


def _apply_player_submission(
    match: PvpMatch,
    *,
    user_id: int,
    selected_answers: Mapping[str, int],
    time_taken_seconds: float,
    now_utc: datetime,
) -> tuple[dict[int, PlayerEntry], bool]:
    """Write the caller's entry once; returns the players map and a replay flag."""
    players = _load_players(match)
    player = players.get(user_id)
    if player is None:
        raise MatchForbiddenError
    if player.has_submitted:
        return players, True

    questions = _load_questions(match)
    player.selected_answers = dict(selected_answers)
    player.score = compute_score(questions, selected_answers)
    player.total = len(questions)
    player.time_taken_seconds = float(time_taken_seconds)
    player.started_at = player.started_at or now_utc
    player.submitted_at = now_utc
    _store_players(match, players)
    match.updated_at = now_utc
    return players, False


def _both_participants_submitted(match: PvpMatch, players: Mapping[int, PlayerEntry]) -> bool:
    participant_ids = match.participant_ids
    if len(participant_ids) < 2:
        return False
    return all(
        players.get(participant_id) is not None and players[participant_id].has_submitted
        for participant_id in participant_ids
    )


async def _complete_match(
    session: AsyncSession,
    *,
    match: PvpMatch,
    players: Mapping[int, PlayerEntry],
    now_utc: datetime,
) -> None:
    """Resolve the winner and write every completion side effect.

    Runs inside the same transaction that recorded the second submission, so
    the status flip, both history entries and the pointer reset commit or
    roll back together.
    """
    first_user_id, second_user_id = match.participant_ids
    resolution = resolve_winner(first_user_id, second_user_id, players)
    match.status = MATCH_STATUS_COMPLETED
    match.completed_at = now_utc
    match.winner_user_id = resolution.winner_user_id
    match.winner_reason = resolution.winner_reason
    match.updated_at = now_utc

    await record_match_history(session, match=match, players=players, completed_at=now_utc)
    await UsersRepo.clear_active_pvp_match(
        session,
        user_ids=match.participant_ids,
        match_id=match.id,
    )
    logger.info(
        "pvp_match_completed",
        match_id=str(match.id),
        match_type=match.match_type,
        winner_user_id=resolution.winner_user_id,
        winner_reason=resolution.winner_reason,
    )


def _expire_async_match_if_due(match: PvpMatch, *, now_utc: datetime) -> bool:
    if match.match_type != MATCH_TYPE_ASYNC or is_async_closed_status(match.status):
        return False
    if match.expires_at is None or match.expires_at > now_utc:
        return False

    players = _load_players(match)
    submitted = [
        participant_id
        for participant_id in match.participant_ids
        if players.get(participant_id) is not None and players[participant_id].has_submitted
    ]
    # Expiry never resolves a winner.
    match.status = MATCH_STATUS_FORFEITED if len(submitted) == 1 else MATCH_STATUS_EXPIRED
    match.closed_at = now_utc
    match.updated_at = now_utc
    logger.info(
        "pvp_async_match_expired",
        match_id=str(match.id),
        status=match.status,
        submitted_user_ids=submitted,
    )
    return True
