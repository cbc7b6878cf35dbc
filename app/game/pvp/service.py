from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.transactions import run_in_transaction
from app.game.pvp.async_matches import (
    expire_async_match,
    expire_due_async_matches,
    start_async_match,
    submit_async_match,
)
from app.game.pvp.challenges import (
    accept_challenge,
    check_challenge_acceptable,
    create_challenge,
    decline_challenge,
    list_challenge_inbox,
)
from app.game.pvp.constants import (
    CHALLENGE_MODE_ASYNC,
    CHALLENGE_STATUS_EXPIRED,
    HISTORY_DEFAULT_PAGE_SIZE,
    MATCH_STATUS_EXPIRED,
    MATCH_STATUS_FORFEITED,
)
from app.game.pvp.errors import (
    ChallengeNotAllowedError,
    ChallengeNotPendingError,
    InvalidChallengeError,
    MatchClosedError,
    QuestionGenerationError,
)
from app.game.pvp.history import list_history
from app.game.pvp.queries import get_match_snapshot_for_user, list_async_inbox
from app.game.pvp.question_sets import QuestionSetProvider, generate_question_set
from app.game.pvp.submissions import validate_submission
from app.game.pvp.sync_matches import (
    claim_sync_match_generation,
    commit_sync_match_questions,
    create_or_resume_sync_match,
    join_sync_match,
    release_sync_match_generation,
    submit_sync_match,
)
from app.game.pvp.types import (
    AsyncInboxEntry,
    ChallengeAcceptResult,
    ChallengeInbox,
    ChallengeSnapshot,
    CreateOrResumeResult,
    HistoryPage,
    JoinResult,
    PvpMatchSnapshot,
    StartResult,
    SubmitResult,
)
from app.services.social_graph import RelationshipChecker, get_relationship_checker

T = TypeVar("T")

logger = structlog.get_logger(__name__)

ASYNC_CLOSED_BY_EXPIRY = frozenset({MATCH_STATUS_EXPIRED, MATCH_STATUS_FORFEITED})


async def _transact(
    operation: str,
    fn: Callable[..., Awaitable[T]],
    /,
    **kwargs: Any,
) -> T:
    async def _work(session: AsyncSession) -> T:
        return await fn(session, **kwargs)

    return await run_in_transaction(_work, operation=operation)


def _raise_if_closed_by_expiry(snapshot: PvpMatchSnapshot) -> None:
    if snapshot.status in ASYNC_CLOSED_BY_EXPIRY:
        raise MatchClosedError


class PvpMatchService:
    """Transactional entry points for the PvP match lifecycle.

    Each operation runs its read-compute-write cycle in one retried
    transaction. Question generation always happens between transactions,
    never while a row lock is held.
    """

    @staticmethod
    async def create_or_resume_sync_match(
        *,
        user_id: int,
        now_utc: datetime,
    ) -> CreateOrResumeResult:
        return await _transact(
            "pvp_sync_create_or_resume",
            create_or_resume_sync_match,
            user_id=user_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def join_sync_match(
        *,
        match_id: UUID,
        user_id: int,
        now_utc: datetime,
    ) -> JoinResult:
        return await _transact(
            "pvp_sync_join",
            join_sync_match,
            match_id=match_id,
            user_id=user_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def start_sync_match(
        *,
        match_id: UUID,
        user_id: int,
        now_utc: datetime,
        provider: QuestionSetProvider | None = None,
        topic_hints: Sequence[str] = (),
    ) -> StartResult:
        claim = await _transact(
            "pvp_sync_start_claim",
            claim_sync_match_generation,
            match_id=match_id,
            user_id=user_id,
            now_utc=now_utc,
        )
        if claim.result is not None:
            return claim.result

        try:
            questions = await generate_question_set(provider, topic_hints=topic_hints)
        except QuestionGenerationError:
            await _transact(
                "pvp_sync_start_release",
                release_sync_match_generation,
                match_id=match_id,
                token=claim.token,
                now_utc=now_utc,
            )
            logger.warning("pvp_question_generation_lease_released", match_id=str(match_id))
            raise

        return await _transact(
            "pvp_sync_start_commit",
            commit_sync_match_questions,
            match_id=match_id,
            user_id=user_id,
            token=claim.token,
            questions=questions,
            now_utc=now_utc,
        )

    @staticmethod
    async def submit_sync_match(
        *,
        match_id: UUID,
        user_id: int,
        selected_answers: object,
        time_taken_seconds: object,
        now_utc: datetime,
    ) -> SubmitResult:
        answers, resolved_time = validate_submission(selected_answers, time_taken_seconds)
        return await _transact(
            "pvp_sync_submit",
            submit_sync_match,
            match_id=match_id,
            user_id=user_id,
            selected_answers=answers,
            time_taken_seconds=resolved_time,
            now_utc=now_utc,
        )

    @staticmethod
    async def start_async_match(
        *,
        match_id: UUID,
        user_id: int,
        now_utc: datetime,
    ) -> StartResult:
        result = await _transact(
            "pvp_async_start",
            start_async_match,
            match_id=match_id,
            user_id=user_id,
            now_utc=now_utc,
        )
        _raise_if_closed_by_expiry(result.snapshot)
        return result

    @staticmethod
    async def submit_async_match(
        *,
        match_id: UUID,
        user_id: int,
        selected_answers: object,
        time_taken_seconds: object,
        now_utc: datetime,
    ) -> SubmitResult:
        answers, resolved_time = validate_submission(selected_answers, time_taken_seconds)
        result = await _transact(
            "pvp_async_submit",
            submit_async_match,
            match_id=match_id,
            user_id=user_id,
            selected_answers=answers,
            time_taken_seconds=resolved_time,
            now_utc=now_utc,
        )
        _raise_if_closed_by_expiry(result.snapshot)
        return result

    @staticmethod
    async def expire_async_match(
        *,
        match_id: UUID,
        now_utc: datetime,
    ) -> PvpMatchSnapshot | None:
        return await _transact(
            "pvp_async_expire",
            expire_async_match,
            match_id=match_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def expire_due_async_matches(*, now_utc: datetime, batch_size: int) -> int:
        return await _transact(
            "pvp_async_expire_batch",
            expire_due_async_matches,
            now_utc=now_utc,
            batch_size=batch_size,
        )

    @staticmethod
    async def get_match_snapshot(
        *,
        match_id: UUID,
        user_id: int,
        match_type: str,
        now_utc: datetime,
    ) -> PvpMatchSnapshot:
        return await _transact(
            "pvp_match_get",
            get_match_snapshot_for_user,
            match_id=match_id,
            user_id=user_id,
            match_type=match_type,
            now_utc=now_utc,
        )

    @staticmethod
    async def list_async_inbox(*, user_id: int, now_utc: datetime) -> list[AsyncInboxEntry]:
        return await _transact(
            "pvp_async_inbox",
            list_async_inbox,
            user_id=user_id,
            now_utc=now_utc,
        )

    @staticmethod
    async def list_history(
        *,
        user_id: int,
        cursor: str | None = None,
        limit: int = HISTORY_DEFAULT_PAGE_SIZE,
    ) -> HistoryPage:
        return await _transact(
            "pvp_history_list",
            list_history,
            user_id=user_id,
            cursor=cursor,
            limit=limit,
        )

    @staticmethod
    async def create_challenge(
        *,
        challenger_user_id: int,
        challenged_user_id: int,
        mode: str,
        now_utc: datetime,
        relationship_checker: RelationshipChecker | None = None,
    ) -> ChallengeSnapshot:
        if challenger_user_id == challenged_user_id:
            raise InvalidChallengeError
        checker = relationship_checker or get_relationship_checker()
        relationship = await checker.check(
            user_id=challenger_user_id,
            other_user_id=challenged_user_id,
        )
        if not relationship.allows_challenge:
            raise ChallengeNotAllowedError
        return await _transact(
            "pvp_challenge_create",
            create_challenge,
            challenger_user_id=challenger_user_id,
            challenged_user_id=challenged_user_id,
            mode=mode,
            now_utc=now_utc,
        )

    @staticmethod
    async def accept_challenge(
        *,
        challenge_id: UUID,
        user_id: int,
        now_utc: datetime,
        provider: QuestionSetProvider | None = None,
    ) -> ChallengeAcceptResult:
        challenge = await _transact(
            "pvp_challenge_check",
            check_challenge_acceptable,
            challenge_id=challenge_id,
            user_id=user_id,
            now_utc=now_utc,
        )
        if challenge.status == CHALLENGE_STATUS_EXPIRED:
            raise ChallengeNotPendingError

        questions = None
        if challenge.mode == CHALLENGE_MODE_ASYNC:
            questions = await generate_question_set(provider)

        result = await _transact(
            "pvp_challenge_accept",
            accept_challenge,
            challenge_id=challenge_id,
            user_id=user_id,
            now_utc=now_utc,
            questions=questions,
        )
        if result.match is None:
            raise ChallengeNotPendingError
        return result

    @staticmethod
    async def decline_challenge(
        *,
        challenge_id: UUID,
        user_id: int,
        now_utc: datetime,
    ) -> ChallengeSnapshot:
        challenge = await _transact(
            "pvp_challenge_decline",
            decline_challenge,
            challenge_id=challenge_id,
            user_id=user_id,
            now_utc=now_utc,
        )
        if challenge.status == CHALLENGE_STATUS_EXPIRED:
            raise ChallengeNotPendingError
        return challenge

    @staticmethod
    async def list_challenge_inbox(*, user_id: int, now_utc: datetime) -> ChallengeInbox:
        return await _transact(
            "pvp_challenge_inbox",
            list_challenge_inbox,
            user_id=user_id,
            now_utc=now_utc,
        )

