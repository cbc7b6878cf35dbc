from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field

ChoiceIndex = Annotated[int, Field(strict=True, ge=0)]


class SubmitAnswersRequest(BaseModel):
    selected_answers: dict[str, ChoiceIndex]
    time_taken_seconds: float = Field(ge=0, allow_inf_nan=False)


class ChallengeCreateRequest(BaseModel):
    challenged_user_id: int = Field(gt=0)
    mode: Literal["sync", "async"] = "sync"


class PlayerResponse(BaseModel):
    user_id: int
    display_name: str | None = None
    email: str | None = None
    joined_at: datetime
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    has_submitted: bool
    selected_answers: dict[str, int] | None = None
    score: int | None = None
    total: int | None = None
    time_taken_seconds: float | None = None


class QuestionResponse(BaseModel):
    id: str
    prompt: str
    choices: list[str]
    correct_choice_index: int | None = None
    explanation: str | None = None


class MatchResponse(BaseModel):
    match_id: UUID
    match_type: str
    status: str
    created_by_user_id: int
    created_at: datetime
    participant_ids: list[int]
    players: list[PlayerResponse]
    questions: list[QuestionResponse]
    started_at: datetime | None = None
    completed_at: datetime | None = None
    winner_user_id: int | None = None
    winner_reason: str | None = None
    challenge_id: UUID | None = None
    expires_at: datetime | None = None


class CreateOrResumeResponse(BaseModel):
    match: MatchResponse
    resumed: bool


class JoinResponse(BaseModel):
    match: MatchResponse
    joined_now: bool


class StartResponse(BaseModel):
    match: MatchResponse
    started_now: bool
    generation_pending: bool


class SubmitResponse(BaseModel):
    match: MatchResponse
    completed_now: bool
    waiting_for_opponent: bool
    idempotent_replay: bool


class AsyncInboxEntryResponse(BaseModel):
    match_id: UUID
    challenge_id: UUID | None = None
    status: str
    created_at: datetime
    expires_at: datetime | None = None
    opponent_user_id: int | None = None
    opponent_display_name: str | None = None
    opponent_email: str | None = None
    my_submitted: bool
    opponent_submitted: bool
    winner_user_id: int | None = None


class AsyncInboxResponse(BaseModel):
    matches: list[AsyncInboxEntryResponse]


class ChallengeResponse(BaseModel):
    challenge_id: UUID
    challenger_user_id: int
    challenged_user_id: int
    mode: str
    status: str
    created_at: datetime
    expires_at: datetime
    responded_at: datetime | None = None
    match_id: UUID | None = None


class ChallengeAcceptResponse(BaseModel):
    challenge: ChallengeResponse
    match: MatchResponse


class ChallengeInboxResponse(BaseModel):
    incoming: list[ChallengeResponse]
    outgoing: list[ChallengeResponse]


class HistoryEntryResponse(BaseModel):
    match_id: UUID
    match_type: str
    opponent_user_id: int | None = None
    opponent_display_name: str | None = None
    opponent_email: str | None = None
    my_score: int = Field(ge=0)
    my_total: int = Field(ge=0)
    my_time_taken_seconds: float
    opponent_score: int = Field(ge=0)
    opponent_total: int = Field(ge=0)
    opponent_time_taken_seconds: float
    winner_user_id: int | None = None
    winner_reason: str
    outcome: str
    completed_at: datetime


class HistoryResponse(BaseModel):
    history: list[HistoryEntryResponse]
    next_cursor: str | None = None
    has_more: bool
