from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Any, Protocol
from uuid import uuid4

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.config import get_settings
from app.game.pvp.errors import QuestionGenerationError
from app.game.pvp.question_bank import SYSTEM_DESIGN_QUESTION_BANK
from app.game.pvp.types import MatchQuestion

logger = structlog.get_logger(__name__)

QUESTION_CHOICE_COUNT = 4


class QuestionSetProvider(Protocol):
    async def generate(self, *, topic_hints: Sequence[str], count: int) -> Any: ...


class GeneratedQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: str = Field(min_length=1)
    choices: list[str] = Field(min_length=QUESTION_CHOICE_COUNT, max_length=QUESTION_CHOICE_COUNT)
    correct_choice_index: int = Field(
        ge=0,
        validation_alias=AliasChoices("correct_choice_index", "correctChoiceIndex", "answerIndex"),
    )
    explanation: str = Field(min_length=1)

    @field_validator("prompt", "explanation")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("choices")
    @classmethod
    def _strip_choices(cls, value: list[str]) -> list[str]:
        stripped = [choice.strip() for choice in value]
        if any(not choice for choice in stripped):
            raise ValueError("choices must not be blank")
        return stripped

    @model_validator(mode="after")
    def _index_in_range(self) -> GeneratedQuestion:
        if self.correct_choice_index >= len(self.choices):
            raise ValueError("correct_choice_index out of range")
        return self


class GeneratedQuestionSet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    questions: list[GeneratedQuestion]


def validate_question_set(raw: Any, *, count: int) -> tuple[MatchQuestion, ...]:
    """Validate a raw generator response and assign fresh question ids.

    Accepts either ``{"questions": [...]}`` or a bare list. Raises
    ``ValueError`` (pydantic ``ValidationError`` included) on any shape
    mismatch, including a wrong question count.
    """
    payload = {"questions": raw} if isinstance(raw, list) else raw
    parsed = GeneratedQuestionSet.model_validate(payload)
    if len(parsed.questions) != count:
        raise ValueError(f"expected {count} questions, got {len(parsed.questions)}")
    return tuple(
        MatchQuestion(
            question_id=uuid4().hex,
            prompt=question.prompt,
            choices=tuple(question.choices),
            correct_choice_index=question.correct_choice_index,
            explanation=question.explanation,
        )
        for question in parsed.questions
    )


class HttpQuestionSetProvider:
    def __init__(self, *, url: str, api_key: str | None, timeout_seconds: float) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds

    async def generate(self, *, topic_hints: Sequence[str], count: int) -> Any:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            response = await client.post(
                self._url,
                json={"topics": list(topic_hints), "count": count},
                headers=headers,
            )
            response.raise_for_status()
            return response.json()


class StaticQuestionSetProvider:
    def __init__(self, bank: Sequence[dict[str, object]] = SYSTEM_DESIGN_QUESTION_BANK) -> None:
        self._bank = tuple(bank)

    async def generate(self, *, topic_hints: Sequence[str], count: int) -> Any:
        del topic_hints
        if count > len(self._bank):
            raise ValueError(f"static bank holds {len(self._bank)} questions, {count} requested")
        return {"questions": [dict(item) for item in random.sample(self._bank, count)]}


def get_question_set_provider() -> QuestionSetProvider:
    settings = get_settings()
    if settings.question_generator_url:
        return HttpQuestionSetProvider(
            url=settings.question_generator_url,
            api_key=settings.question_generator_api_key,
            timeout_seconds=settings.question_generator_timeout_seconds,
        )
    if settings.app_env != "dev":
        logger.warning("question_generator_url_missing_using_static_bank", app_env=settings.app_env)
    return StaticQuestionSetProvider()


async def generate_question_set(
    provider: QuestionSetProvider | None = None,
    *,
    topic_hints: Sequence[str] = (),
    count: int | None = None,
    max_attempts: int | None = None,
) -> tuple[MatchQuestion, ...]:
    settings = get_settings()
    resolved_provider = provider or get_question_set_provider()
    resolved_count = max(1, int(count or settings.pvp_question_count))
    resolved_attempts = max(1, int(max_attempts or settings.question_generator_max_attempts))

    last_error: Exception | None = None
    for attempt in range(1, resolved_attempts + 1):
        try:
            raw = await resolved_provider.generate(
                topic_hints=tuple(topic_hints),
                count=resolved_count,
            )
            return validate_question_set(raw, count=resolved_count)
        except (httpx.HTTPError, ValueError) as exc:
            last_error = exc
            logger.warning(
                "question_set_generation_attempt_failed",
                attempt=attempt,
                max_attempts=resolved_attempts,
                error_type=type(exc).__name__,
            )

    logger.error("question_set_generation_failed", attempts=resolved_attempts)
    raise QuestionGenerationError from last_error
