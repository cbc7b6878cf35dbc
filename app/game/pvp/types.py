from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MatchQuestion:
    question_id: str
    prompt: str
    choices: tuple[str, ...]
    correct_choice_index: int
    explanation: str


@dataclass(slots=True)
class PlayerEntry:
    user_id: int
    display_name: str | None
    email: str | None
    joined_at: datetime
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    selected_answers: dict[str, int] | None = None
    score: int | None = None
    total: int | None = None
    time_taken_seconds: float | None = None

    @property
    def has_submitted(self) -> bool:
        return self.submitted_at is not None


@dataclass(frozen=True, slots=True)
class WinnerResolution:
    winner_user_id: int | None
    winner_reason: str


@dataclass(slots=True)
class PvpMatchSnapshot:
    match_id: UUID
    match_type: str
    status: str
    created_by_user_id: int
    created_at: datetime
    participant_ids: tuple[int, ...]
    players: dict[int, PlayerEntry]
    questions: tuple[MatchQuestion, ...]
    started_at: datetime | None = None
    completed_at: datetime | None = None
    winner_user_id: int | None = None
    winner_reason: str | None = None
    challenge_id: UUID | None = None
    expires_at: datetime | None = None


@dataclass(slots=True)
class CreateOrResumeResult:
    snapshot: PvpMatchSnapshot
    resumed: bool


@dataclass(slots=True)
class JoinResult:
    snapshot: PvpMatchSnapshot
    joined_now: bool = False


@dataclass(slots=True)
class StartResult:
    snapshot: PvpMatchSnapshot
    started_now: bool = False
    generation_pending: bool = False


@dataclass(slots=True)
class SubmitResult:
    snapshot: PvpMatchSnapshot
    completed_now: bool = False
    waiting_for_opponent: bool = False
    idempotent_replay: bool = False


@dataclass(frozen=True, slots=True)
class HistoryEntryView:
    match_id: UUID
    match_type: str
    opponent_user_id: int | None
    opponent_display_name: str | None
    opponent_email: str | None
    my_score: int
    my_total: int
    my_time_taken_seconds: float
    opponent_score: int
    opponent_total: int
    opponent_time_taken_seconds: float
    winner_user_id: int | None
    winner_reason: str
    outcome: str
    completed_at: datetime


@dataclass(slots=True)
class HistoryPage:
    entries: list[HistoryEntryView] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


@dataclass(slots=True)
class AsyncInboxEntry:
    match_id: UUID
    challenge_id: UUID | None
    status: str
    created_at: datetime
    expires_at: datetime | None
    opponent_user_id: int | None
    opponent_display_name: str | None
    opponent_email: str | None
    my_submitted: bool
    opponent_submitted: bool
    winner_user_id: int | None = None


@dataclass(slots=True)
class ChallengeSnapshot:
    challenge_id: UUID
    challenger_user_id: int
    challenged_user_id: int
    mode: str
    status: str
    created_at: datetime
    expires_at: datetime
    responded_at: datetime | None = None
    match_id: UUID | None = None


@dataclass(slots=True)
class ChallengeAcceptResult:
    challenge: ChallengeSnapshot
    match: PvpMatchSnapshot | None = None


@dataclass(slots=True)
class ChallengeInbox:
    incoming: list[ChallengeSnapshot] = field(default_factory=list)
    outgoing: list[ChallengeSnapshot] = field(default_factory=list)
