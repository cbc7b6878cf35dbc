from __future__ import annotations

import math
from collections.abc import Mapping

from app.game.pvp.errors import InvalidSubmissionError


def validate_submission(
    selected_answers: object,
    time_taken_seconds: object,
) -> tuple[dict[str, int], float]:
    """Structural check run before any store access.

    Answers must be a map of question id to a non-negative integer choice
    index; time must be a finite non-negative number.
    """
    if not isinstance(selected_answers, Mapping):
        raise InvalidSubmissionError

    answers: dict[str, int] = {}
    for question_id, choice_index in selected_answers.items():
        if not isinstance(question_id, str) or not question_id:
            raise InvalidSubmissionError
        if isinstance(choice_index, bool) or not isinstance(choice_index, int):
            raise InvalidSubmissionError
        if choice_index < 0:
            raise InvalidSubmissionError
        answers[question_id] = choice_index

    if time_taken_seconds is None or isinstance(time_taken_seconds, bool):
        raise InvalidSubmissionError
    if not isinstance(time_taken_seconds, (int, float)):
        raise InvalidSubmissionError
    resolved_time = float(time_taken_seconds)
    if math.isnan(resolved_time) or math.isinf(resolved_time) or resolved_time < 0:
        raise InvalidSubmissionError

    return answers, resolved_time
