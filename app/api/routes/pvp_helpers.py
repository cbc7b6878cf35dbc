from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.db.transactions import TransactionRetryExhaustedError
from app.game.pvp.constants import ASYNC_CLOSED_STATUSES
from app.game.pvp.errors import (
    ChallengeExistsError,
    ChallengeForbiddenError,
    ChallengeNotAllowedError,
    ChallengeNotFoundError,
    ChallengeNotPendingError,
    InvalidChallengeError,
    InvalidSubmissionError,
    MatchClosedError,
    MatchForbiddenError,
    MatchFullError,
    MatchNotEnoughPlayersError,
    MatchNotFoundError,
    MatchNotStartedError,
    QuestionGenerationError,
)
from app.game.pvp.types import (
    AsyncInboxEntry,
    ChallengeSnapshot,
    HistoryEntryView,
    PlayerEntry,
    PvpMatchSnapshot,
)
from app.services.internal_auth import resolve_caller_user_id
from app.services.rate_limit import get_rate_limiter

from .pvp_models import (
    AsyncInboxEntryResponse,
    ChallengeResponse,
    HistoryEntryResponse,
    MatchResponse,
    PlayerResponse,
    QuestionResponse,
)

logger = structlog.get_logger(__name__)

ERROR_RESPONSES: dict[type[Exception], tuple[int, str]] = {
    MatchNotFoundError: (404, "E_MATCH_NOT_FOUND"),
    ChallengeNotFoundError: (404, "E_CHALLENGE_NOT_FOUND"),
    MatchForbiddenError: (403, "E_FORBIDDEN"),
    ChallengeForbiddenError: (403, "E_FORBIDDEN"),
    ChallengeNotAllowedError: (403, "E_FORBIDDEN"),
    MatchFullError: (409, "E_MATCH_FULL"),
    MatchNotEnoughPlayersError: (409, "E_NOT_ENOUGH_PLAYERS"),
    MatchNotStartedError: (409, "E_MATCH_NOT_STARTED"),
    MatchClosedError: (409, "E_MATCH_CLOSED"),
    ChallengeNotPendingError: (409, "E_CHALLENGE_NOT_PENDING"),
    ChallengeExistsError: (409, "E_CHALLENGE_EXISTS"),
    InvalidSubmissionError: (422, "E_VALIDATION"),
    InvalidChallengeError: (422, "E_VALIDATION"),
    QuestionGenerationError: (502, "E_QUESTION_GENERATION_FAILED"),
    TransactionRetryExhaustedError: (503, "E_STORE_BUSY"),
}
HANDLED_ERRORS: tuple[type[Exception], ...] = tuple(ERROR_RESPONSES)


def _http_error_for(exc: Exception) -> HTTPException:
    status_code, code = ERROR_RESPONSES[type(exc)]
    return HTTPException(status_code=status_code, detail={"code": code})


def _require_caller(request: Request) -> int:
    user_id = resolve_caller_user_id(request, expected_token=get_settings().internal_api_token)
    if user_id is None:
        logger.warning("pvp_auth_failed", path=request.url.path)
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHORIZED"})
    return user_id


async def _enforce_rate_limit(*, user_id: int, action: str) -> None:
    if not await get_rate_limiter().allow(user_id=user_id, action=action):
        raise HTTPException(status_code=429, detail={"code": "E_RATE_LIMITED"})


def _player_as_response(player: PlayerEntry, *, show_private: bool) -> PlayerResponse:
    return PlayerResponse(
        user_id=player.user_id,
        display_name=player.display_name,
        email=player.email,
        joined_at=player.joined_at,
        started_at=player.started_at,
        submitted_at=player.submitted_at,
        has_submitted=player.has_submitted,
        selected_answers=player.selected_answers if show_private else None,
        score=player.score if show_private else None,
        total=player.total,
        time_taken_seconds=player.time_taken_seconds,
    )


def _match_as_response(snapshot: PvpMatchSnapshot, *, viewer_user_id: int) -> MatchResponse:
    """Serialize a snapshot for one participant.

    While the match is live the answer key stays hidden, and so do the other
    player's picks and score, which would otherwise reveal it.
    """
    reveal_answers = snapshot.status in ASYNC_CLOSED_STATUSES
    return MatchResponse(
        match_id=snapshot.match_id,
        match_type=snapshot.match_type,
        status=snapshot.status,
        created_by_user_id=snapshot.created_by_user_id,
        created_at=snapshot.created_at,
        participant_ids=list(snapshot.participant_ids),
        players=[
            _player_as_response(
                player,
                show_private=reveal_answers or player.user_id == viewer_user_id,
            )
            for player in (
                snapshot.players[user_id]
                for user_id in snapshot.participant_ids
                if user_id in snapshot.players
            )
        ],
        questions=[
            QuestionResponse(
                id=question.question_id,
                prompt=question.prompt,
                choices=list(question.choices),
                correct_choice_index=question.correct_choice_index if reveal_answers else None,
                explanation=question.explanation if reveal_answers else None,
            )
            for question in snapshot.questions
        ],
        started_at=snapshot.started_at,
        completed_at=snapshot.completed_at,
        winner_user_id=snapshot.winner_user_id,
        winner_reason=snapshot.winner_reason,
        challenge_id=snapshot.challenge_id,
        expires_at=snapshot.expires_at,
    )


def _challenge_as_response(snapshot: ChallengeSnapshot) -> ChallengeResponse:
    return ChallengeResponse(
        challenge_id=snapshot.challenge_id,
        challenger_user_id=snapshot.challenger_user_id,
        challenged_user_id=snapshot.challenged_user_id,
        mode=snapshot.mode,
        status=snapshot.status,
        created_at=snapshot.created_at,
        expires_at=snapshot.expires_at,
        responded_at=snapshot.responded_at,
        match_id=snapshot.match_id,
    )


def _inbox_entry_as_response(entry: AsyncInboxEntry) -> AsyncInboxEntryResponse:
    return AsyncInboxEntryResponse(
        match_id=entry.match_id,
        challenge_id=entry.challenge_id,
        status=entry.status,
        created_at=entry.created_at,
        expires_at=entry.expires_at,
        opponent_user_id=entry.opponent_user_id,
        opponent_display_name=entry.opponent_display_name,
        opponent_email=entry.opponent_email,
        my_submitted=entry.my_submitted,
        opponent_submitted=entry.opponent_submitted,
        winner_user_id=entry.winner_user_id,
    )


def _history_entry_as_response(entry: HistoryEntryView) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        match_id=entry.match_id,
        match_type=entry.match_type,
        opponent_user_id=entry.opponent_user_id,
        opponent_display_name=entry.opponent_display_name,
        opponent_email=entry.opponent_email,
        my_score=entry.my_score,
        my_total=entry.my_total,
        my_time_taken_seconds=entry.my_time_taken_seconds,
        opponent_score=entry.opponent_score,
        opponent_total=entry.opponent_total,
        opponent_time_taken_seconds=entry.opponent_time_taken_seconds,
        winner_user_id=entry.winner_user_id,
        winner_reason=entry.winner_reason,
        outcome=entry.outcome,
        completed_at=entry.completed_at,
    )
