from __future__ import annotations

MATCH_TYPE_SYNC = "sync"
MATCH_TYPE_ASYNC = "async"

# Sync lobby lifecycle.
MATCH_STATUS_WAITING = "waiting"
MATCH_STATUS_READY = "ready"
MATCH_STATUS_IN_PROGRESS = "in_progress"

# Async lifecycle.
MATCH_STATUS_OPEN = "open"
MATCH_STATUS_AWAITING_OPPONENT = "awaiting_opponent"
MATCH_STATUS_EXPIRED = "expired"
MATCH_STATUS_FORFEITED = "forfeited"

MATCH_STATUS_COMPLETED = "completed"

ASYNC_LIVE_STATUSES: frozenset[str] = frozenset(
    {MATCH_STATUS_OPEN, MATCH_STATUS_AWAITING_OPPONENT}
)

ASYNC_CLOSED_STATUSES: frozenset[str] = frozenset(
    {MATCH_STATUS_COMPLETED, MATCH_STATUS_EXPIRED, MATCH_STATUS_FORFEITED}
)

ASYNC_INBOX_STATUSES: tuple[str, ...] = (
    MATCH_STATUS_OPEN,
    MATCH_STATUS_AWAITING_OPPONENT,
    MATCH_STATUS_COMPLETED,
)

WINNER_REASON_SCORE = "score"
WINNER_REASON_TIME = "time"
WINNER_REASON_TIE = "tie"

OUTCOME_WIN = "win"
OUTCOME_LOSS = "loss"
OUTCOME_DRAW = "draw"

CHALLENGE_MODE_SYNC = MATCH_TYPE_SYNC
CHALLENGE_MODE_ASYNC = MATCH_TYPE_ASYNC

CHALLENGE_STATUS_PENDING = "pending"
CHALLENGE_STATUS_ACCEPTED = "accepted"
CHALLENGE_STATUS_DECLINED = "declined"
CHALLENGE_STATUS_EXPIRED = "expired"

MAX_PARTICIPANTS = 2
REUSABLE_MATCH_SCAN_LIMIT = 10
ASYNC_INBOX_LIMIT = 50
CHALLENGE_INBOX_LIMIT = 50
HISTORY_DEFAULT_PAGE_SIZE = 20
HISTORY_MAX_PAGE_SIZE = 50


def is_async_closed_status(status: str) -> bool:
    return status in ASYNC_CLOSED_STATUSES
