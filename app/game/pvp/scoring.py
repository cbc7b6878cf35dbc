"""Pure scoring and winner resolution for PvP matches.

Both functions are deterministic and free of side effects so that the
outcome of a match depends only on the two final submissions, never on the
order in which they arrived.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from app.game.pvp.constants import WINNER_REASON_SCORE, WINNER_REASON_TIE, WINNER_REASON_TIME
from app.game.pvp.types import MatchQuestion, PlayerEntry, WinnerResolution


def compute_score(
    questions: Iterable[MatchQuestion],
    selected_answers: Mapping[str, int],
) -> int:
    """Count questions whose selected choice equals the correct choice.

    Unanswered questions and answers for unknown question ids simply do not
    score; they are never an error.
    """
    score = 0
    for question in questions:
        selected = selected_answers.get(question.question_id)
        if selected is None or isinstance(selected, bool):
            continue
        if selected == question.correct_choice_index:
            score += 1
    return score


def _score_of(player: PlayerEntry | None) -> int:
    if player is None or player.score is None:
        return 0
    return int(player.score)


def _time_of(player: PlayerEntry | None) -> float:
    if player is None or player.time_taken_seconds is None:
        return math.inf
    return float(player.time_taken_seconds)


def resolve_winner(
    first_user_id: int,
    second_user_id: int,
    players: Mapping[int, PlayerEntry],
) -> WinnerResolution:
    """Score first, then time taken, then a draw."""
    first = players.get(first_user_id)
    second = players.get(second_user_id)

    first_score = _score_of(first)
    second_score = _score_of(second)
    if first_score > second_score:
        return WinnerResolution(winner_user_id=first_user_id, winner_reason=WINNER_REASON_SCORE)
    if second_score > first_score:
        return WinnerResolution(winner_user_id=second_user_id, winner_reason=WINNER_REASON_SCORE)

    first_time = _time_of(first)
    second_time = _time_of(second)
    if first_time < second_time:
        return WinnerResolution(winner_user_id=first_user_id, winner_reason=WINNER_REASON_TIME)
    if second_time < first_time:
        return WinnerResolution(winner_user_id=second_user_id, winner_reason=WINNER_REASON_TIME)

    return WinnerResolution(winner_user_id=None, winner_reason=WINNER_REASON_TIE)
