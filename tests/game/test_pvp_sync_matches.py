from __future__ import annotations

import asyncio
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.db.transactions import TransactionRetryExhaustedError
from app.game.pvp.errors import (
    InvalidSubmissionError,
    MatchClosedError,
    MatchForbiddenError,
    MatchFullError,
    MatchNotEnoughPlayersError,
    MatchNotFoundError,
    MatchNotStartedError,
    QuestionGenerationError,
)
from app.game.pvp.service import PvpMatchService
from tests.game.pvp_store_fixtures import CORRECT_CHOICES, CountingQuestionProvider, answers_for

UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _ready_match(store, *, host: int = 101, guest: int = 202):  # noqa: ANN001
    created = await PvpMatchService.create_or_resume_sync_match(user_id=host, now_utc=NOW)
    await PvpMatchService.join_sync_match(
        match_id=created.snapshot.match_id,
        user_id=guest,
        now_utc=NOW + timedelta(seconds=5),
    )
    return created.snapshot.match_id


async def _started_match(store, provider=None):  # noqa: ANN001
    match_id = await _ready_match(store)
    result = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=101,
        now_utc=NOW + timedelta(seconds=10),
        provider=provider or CountingQuestionProvider(),
    )
    question_ids = [question.question_id for question in result.snapshot.questions]
    return match_id, question_ids


@pytest.mark.asyncio
async def test_create_or_resume_creates_waiting_match_and_sets_pointer(pvp_store) -> None:
    result = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)

    assert result.resumed is False
    assert result.snapshot.status == "waiting"
    assert result.snapshot.participant_ids == (101,)
    assert result.snapshot.players[101].display_name == "Ada"
    assert pvp_store.user_row(101)["active_pvp_match_id"] == result.snapshot.match_id


@pytest.mark.asyncio
async def test_create_or_resume_returns_existing_live_match(pvp_store) -> None:
    first = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)
    again = await PvpMatchService.create_or_resume_sync_match(
        user_id=101,
        now_utc=NOW + timedelta(minutes=1),
    )

    assert again.resumed is True
    assert again.snapshot.match_id == first.snapshot.match_id
    assert len(pvp_store.tables["pvp_matches"]) == 1


@pytest.mark.asyncio
async def test_create_or_resume_recovers_lost_pointer_from_live_scan(pvp_store) -> None:
    first = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)
    pvp_store.user_row(101)["active_pvp_match_id"] = None

    again = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)

    assert again.resumed is True
    assert again.snapshot.match_id == first.snapshot.match_id
    assert pvp_store.user_row(101)["active_pvp_match_id"] == first.snapshot.match_id


@pytest.mark.asyncio
async def test_create_or_resume_provisions_unknown_user(pvp_store) -> None:
    result = await PvpMatchService.create_or_resume_sync_match(user_id=909, now_utc=NOW)

    assert result.snapshot.players[909].display_name is None
    assert pvp_store.user_row(909)["active_pvp_match_id"] == result.snapshot.match_id


@pytest.mark.asyncio
async def test_join_sync_match_moves_to_ready_and_is_idempotent(pvp_store) -> None:
    created = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)
    match_id = created.snapshot.match_id

    joined = await PvpMatchService.join_sync_match(match_id=match_id, user_id=202, now_utc=NOW)
    rejoined = await PvpMatchService.join_sync_match(match_id=match_id, user_id=202, now_utc=NOW)
    host_rejoin = await PvpMatchService.join_sync_match(match_id=match_id, user_id=101, now_utc=NOW)

    assert joined.joined_now is True
    assert joined.snapshot.status == "ready"
    assert joined.snapshot.participant_ids == (101, 202)
    assert rejoined.joined_now is False
    assert host_rejoin.joined_now is False
    assert pvp_store.user_row(202)["active_pvp_match_id"] == match_id


@pytest.mark.asyncio
async def test_join_sync_match_rejects_third_player_and_unknown_match(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)

    with pytest.raises(MatchFullError):
        await PvpMatchService.join_sync_match(match_id=match_id, user_id=303, now_utc=NOW)
    with pytest.raises(MatchNotFoundError):
        await PvpMatchService.join_sync_match(match_id=uuid4(), user_id=303, now_utc=NOW)


@pytest.mark.asyncio
async def test_start_requires_two_participants(pvp_store) -> None:
    created = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)
    provider = CountingQuestionProvider()

    with pytest.raises(MatchNotEnoughPlayersError):
        await PvpMatchService.start_sync_match(
            match_id=created.snapshot.match_id,
            user_id=101,
            now_utc=NOW,
            provider=provider,
        )
    assert provider.calls == 0


@pytest.mark.asyncio
async def test_start_rejects_non_participant(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)

    with pytest.raises(MatchForbiddenError):
        await PvpMatchService.start_sync_match(
            match_id=match_id,
            user_id=303,
            now_utc=NOW,
            provider=CountingQuestionProvider(),
        )


@pytest.mark.asyncio
async def test_start_generates_once_and_is_idempotent(pvp_store) -> None:
    provider = CountingQuestionProvider()
    match_id = await _ready_match(pvp_store)

    first = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=101,
        now_utc=NOW,
        provider=provider,
    )
    second = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=202,
        now_utc=NOW + timedelta(seconds=1),
        provider=provider,
    )

    assert first.started_now is True
    assert first.snapshot.status == "in_progress"
    assert len(first.snapshot.questions) == 5
    assert second.started_now is False
    assert [q.question_id for q in second.snapshot.questions] == [
        q.question_id for q in first.snapshot.questions
    ]
    assert provider.calls == 1
    assert pvp_store.match_row(match_id)["generation_claim_token"] is None


@pytest.mark.asyncio
async def test_concurrent_starts_generate_one_question_set(pvp_store) -> None:
    provider = CountingQuestionProvider()
    match_id = await _ready_match(pvp_store)

    results = await asyncio.gather(
        PvpMatchService.start_sync_match(match_id=match_id, user_id=101, now_utc=NOW, provider=provider),
        PvpMatchService.start_sync_match(match_id=match_id, user_id=202, now_utc=NOW, provider=provider),
    )

    assert provider.calls == 1
    assert sum(result.started_now for result in results) == 1
    assert pvp_store.match_row(match_id)["status"] == "in_progress"
    assert len(pvp_store.match_row(match_id)["questions"]) == 5


@pytest.mark.asyncio
async def test_start_generation_failure_releases_lease(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)

    with pytest.raises(QuestionGenerationError):
        await PvpMatchService.start_sync_match(
            match_id=match_id,
            user_id=101,
            now_utc=NOW,
            provider=CountingQuestionProvider(fail=True),
        )

    row = pvp_store.match_row(match_id)
    assert row["status"] == "ready"
    assert row["questions"] == []
    assert row["generation_claim_token"] is None

    retry = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=202,
        now_utc=NOW,
        provider=CountingQuestionProvider(),
    )
    assert retry.started_now is True


@pytest.mark.asyncio
async def test_start_reports_pending_while_another_caller_generates(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)
    row = pvp_store.match_row(match_id)
    row["generation_claim_token"] = "held-by-opponent"
    row["generation_claimed_at"] = NOW - timedelta(seconds=3)
    provider = CountingQuestionProvider()

    result = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=101,
        now_utc=NOW,
        provider=provider,
    )

    assert result.generation_pending is True
    assert result.started_now is False
    assert provider.calls == 0


@pytest.mark.asyncio
async def test_stale_generation_lease_can_be_taken_over(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)
    row = pvp_store.match_row(match_id)
    row["generation_claim_token"] = "abandoned"
    row["generation_claimed_at"] = NOW - timedelta(hours=1)

    result = await PvpMatchService.start_sync_match(
        match_id=match_id,
        user_id=101,
        now_utc=NOW,
        provider=CountingQuestionProvider(),
    )

    assert result.started_now is True


@pytest.mark.asyncio
async def test_submit_before_start_is_rejected(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)

    with pytest.raises(MatchNotStartedError):
        await PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=101,
            selected_answers={},
            time_taken_seconds=1.0,
            now_utc=NOW,
        )


@pytest.mark.asyncio
async def test_submit_validates_payload_before_touching_store(pvp_store) -> None:
    match_id, _ = await _started_match(pvp_store)
    commits_before = pvp_store.commits

    with pytest.raises(InvalidSubmissionError):
        await PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=101,
            selected_answers={"q": -1},
            time_taken_seconds=1.0,
            now_utc=NOW,
        )
    assert pvp_store.commits == commits_before


@pytest.mark.asyncio
async def test_submit_by_non_participant_is_forbidden_and_changes_nothing(pvp_store) -> None:
    match_id, question_ids = await _started_match(pvp_store)
    await PvpMatchService.submit_sync_match(
        match_id=match_id,
        user_id=101,
        selected_answers=answers_for(question_ids, CORRECT_CHOICES),
        time_taken_seconds=30.0,
        now_utc=NOW + timedelta(seconds=40),
    )
    before = deepcopy(pvp_store.match_row(match_id))
    commits_before = pvp_store.commits

    with pytest.raises(MatchForbiddenError):
        await PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=303,
            selected_answers=answers_for(question_ids, CORRECT_CHOICES),
            time_taken_seconds=10.0,
            now_utc=NOW + timedelta(seconds=50),
        )

    assert pvp_store.match_row(match_id) == before
    assert pvp_store.commits == commits_before
    assert pvp_store.user_row(303)["active_pvp_match_id"] is None


@pytest.mark.asyncio
async def test_full_sync_match_completes_with_score_winner(pvp_store) -> None:
    match_id, question_ids = await _started_match(pvp_store)

    first = await PvpMatchService.submit_sync_match(
        match_id=match_id,
        user_id=101,
        selected_answers=answers_for(question_ids, CORRECT_CHOICES),
        time_taken_seconds=42.0,
        now_utc=NOW + timedelta(minutes=1),
    )
    replay = await PvpMatchService.submit_sync_match(
        match_id=match_id,
        user_id=101,
        selected_answers={},
        time_taken_seconds=1.0,
        now_utc=NOW + timedelta(minutes=2),
    )
    second = await PvpMatchService.submit_sync_match(
        match_id=match_id,
        user_id=202,
        selected_answers=answers_for(question_ids, (1, 0, 2, 0, 0)),
        time_taken_seconds=12.5,
        now_utc=NOW + timedelta(minutes=3),
    )

    assert first.waiting_for_opponent is True
    assert first.snapshot.players[101].score == 5
    assert replay.idempotent_replay is True
    assert replay.snapshot.players[101].score == 5
    assert second.completed_now is True
    assert second.snapshot.status == "completed"
    assert second.snapshot.winner_user_id == 101
    assert second.snapshot.winner_reason == "score"
    assert second.snapshot.players[202].score == 3

    outcomes = {row["user_id"]: row["outcome"] for row in pvp_store.history_rows()}
    assert outcomes == {101: "win", 202: "loss"}
    assert pvp_store.user_row(101)["active_pvp_match_id"] is None
    assert pvp_store.user_row(202)["active_pvp_match_id"] is None

    with pytest.raises(MatchClosedError):
        await PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=202,
            selected_answers={},
            time_taken_seconds=1.0,
            now_utc=NOW + timedelta(minutes=4),
        )


@pytest.mark.asyncio
async def test_concurrent_final_submissions_complete_exactly_once(pvp_store) -> None:
    match_id, question_ids = await _started_match(pvp_store)
    answers = answers_for(question_ids, CORRECT_CHOICES)

    results = await asyncio.gather(
        PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=101,
            selected_answers=answers,
            time_taken_seconds=30.0,
            now_utc=NOW,
        ),
        PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=202,
            selected_answers=answers,
            time_taken_seconds=20.0,
            now_utc=NOW,
        ),
    )

    assert sum(result.completed_now for result in results) == 1
    assert sum(result.waiting_for_opponent for result in results) == 1
    assert len(pvp_store.history_rows()) == 2
    row = pvp_store.match_row(match_id)
    assert row["winner_user_id"] == 202
    assert row["winner_reason"] == "time"


@pytest.mark.asyncio
async def test_completed_match_is_not_resumed(pvp_store) -> None:
    match_id, question_ids = await _started_match(pvp_store)
    for user_id in (101, 202):
        await PvpMatchService.submit_sync_match(
            match_id=match_id,
            user_id=user_id,
            selected_answers=answers_for(question_ids, CORRECT_CHOICES),
            time_taken_seconds=10.0,
            now_utc=NOW,
        )

    fresh = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)

    assert fresh.resumed is False
    assert fresh.snapshot.match_id != match_id
    history = [row for row in pvp_store.history_rows(101)]
    assert history[0]["outcome"] == "draw"


@pytest.mark.asyncio
async def test_get_snapshot_checks_participation(pvp_store) -> None:
    match_id = await _ready_match(pvp_store)

    snapshot = await PvpMatchService.get_match_snapshot(
        match_id=match_id,
        user_id=202,
        match_type="sync",
        now_utc=NOW,
    )
    assert snapshot.status == "ready"

    with pytest.raises(MatchForbiddenError):
        await PvpMatchService.get_match_snapshot(
            match_id=match_id,
            user_id=303,
            match_type="sync",
            now_utc=NOW,
        )
    with pytest.raises(MatchNotFoundError):
        await PvpMatchService.get_match_snapshot(
            match_id=match_id,
            user_id=101,
            match_type="async",
            now_utc=NOW,
        )


@pytest.mark.asyncio
async def test_conflicting_commit_is_retried(pvp_store) -> None:
    pvp_store.conflicts_to_inject = 2

    result = await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)

    assert result.resumed is False
    assert len(pvp_store.tables["pvp_matches"]) == 1


@pytest.mark.asyncio
async def test_persistent_conflicts_surface_as_exhausted(pvp_store) -> None:
    pvp_store.conflicts_to_inject = 100

    with pytest.raises(TransactionRetryExhaustedError):
        await PvpMatchService.create_or_resume_sync_match(user_id=101, now_utc=NOW)

    assert pvp_store.tables["pvp_matches"] == {}
