from __future__ import annotations

import random
from datetime import datetime, timezone

from app.game.pvp.scoring import compute_score, resolve_winner
from app.game.pvp.types import MatchQuestion, PlayerEntry

JOINED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _questions(correct_choices: list[int]) -> tuple[MatchQuestion, ...]:
    return tuple(
        MatchQuestion(
            question_id=f"q{index}",
            prompt=f"Prompt {index}",
            choices=("A", "B", "C", "D"),
            correct_choice_index=correct,
            explanation="",
        )
        for index, correct in enumerate(correct_choices, start=1)
    )


def _player(user_id: int, *, score: int | None, time_taken: float | None) -> PlayerEntry:
    return PlayerEntry(
        user_id=user_id,
        display_name=None,
        email=None,
        joined_at=JOINED_AT,
        submitted_at=JOINED_AT,
        score=score,
        total=5,
        time_taken_seconds=time_taken,
    )


def test_compute_score_counts_only_exact_matches() -> None:
    questions = _questions([1, 0, 2, 1, 3])

    assert compute_score(questions, {"q1": 1, "q2": 0, "q3": 2, "q4": 1, "q5": 3}) == 5
    assert compute_score(questions, {"q1": 1, "q2": 3, "q3": 2}) == 2
    assert compute_score(questions, {}) == 0


def test_compute_score_ignores_unknown_question_ids() -> None:
    questions = _questions([1, 0])
    assert compute_score(questions, {"q1": 1, "missing": 0}) == 1


def test_compute_score_is_stable_across_calls_and_question_order() -> None:
    questions = _questions([1, 0, 2, 1, 3])
    answers = {"q1": 1, "q2": 1, "q3": 2, "q4": 1, "q5": 0}
    shuffled = list(questions)
    random.Random(7).shuffle(shuffled)

    scores = [
        compute_score(ordering, answers)
        for ordering in (questions, tuple(reversed(questions)), tuple(shuffled))
        for _ in range(3)
    ]

    assert scores == [3] * 9


def test_resolve_winner_prefers_higher_score() -> None:
    players = {
        1: _player(1, score=5, time_taken=40.0),
        2: _player(2, score=3, time_taken=10.0),
    }

    resolution = resolve_winner(1, 2, players)

    assert resolution.winner_user_id == 1
    assert resolution.winner_reason == "score"


def test_resolve_winner_breaks_score_tie_by_time() -> None:
    players = {
        1: _player(1, score=4, time_taken=31.5),
        2: _player(2, score=4, time_taken=22.0),
    }

    resolution = resolve_winner(1, 2, players)

    assert resolution.winner_user_id == 2
    assert resolution.winner_reason == "time"


def test_resolve_winner_returns_draw_on_full_tie() -> None:
    players = {
        1: _player(1, score=3, time_taken=20.0),
        2: _player(2, score=3, time_taken=20.0),
    }

    resolution = resolve_winner(1, 2, players)

    assert resolution.winner_user_id is None
    assert resolution.winner_reason == "tie"


def test_resolve_winner_treats_missing_time_as_slowest() -> None:
    players = {
        1: _player(1, score=2, time_taken=None),
        2: _player(2, score=2, time_taken=99.0),
    }

    resolution = resolve_winner(1, 2, players)

    assert resolution.winner_user_id == 2
    assert resolution.winner_reason == "time"


def test_resolve_winner_is_symmetric_in_argument_order() -> None:
    players = {
        1: _player(1, score=1, time_taken=5.0),
        2: _player(2, score=4, time_taken=50.0),
    }

    assert resolve_winner(1, 2, players) == resolve_winner(2, 1, players)
