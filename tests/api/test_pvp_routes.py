from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.routes import pvp_helpers
from app.db.transactions import TransactionRetryExhaustedError
from app.game.pvp.errors import (
    ChallengeExistsError,
    InvalidSubmissionError,
    MatchClosedError,
    MatchForbiddenError,
    MatchNotFoundError,
    QuestionGenerationError,
)
from app.game.pvp.service import PvpMatchService
from app.game.pvp.types import (
    ChallengeSnapshot,
    HistoryEntryView,
    HistoryPage,
    MatchQuestion,
    PlayerEntry,
    PvpMatchSnapshot,
    SubmitResult,
)
from app.main import app
from tests.game.pvp_store_fixtures import install_fake_pvp_store

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TOKEN = "internal-secret"


class _AllowAll:
    def __init__(self) -> None:
        self.calls: list[tuple[int, str]] = []

    async def allow(self, *, user_id: int, action: str) -> bool:
        self.calls.append((user_id, action))
        return True


class _DenyAll:
    async def allow(self, *, user_id: int, action: str) -> bool:
        del user_id, action
        return False


@pytest.fixture
def rate_limiter(monkeypatch: pytest.MonkeyPatch) -> _AllowAll:
    limiter = _AllowAll()
    monkeypatch.setattr(pvp_helpers, "get_settings", lambda: SimpleNamespace(internal_api_token=TOKEN))
    monkeypatch.setattr(pvp_helpers, "get_rate_limiter", lambda: limiter)
    return limiter


def _headers(user_id: int) -> dict[str, str]:
    return {"X-Internal-Token": TOKEN, "X-User-Id": str(user_id)}


def _snapshot(status: str, *, match_type: str = "sync") -> PvpMatchSnapshot:
    player = PlayerEntry(
        user_id=1,
        display_name="Ada",
        email=None,
        joined_at=NOW,
        submitted_at=NOW,
        selected_answers={"q1": 2},
        score=1,
        total=1,
        time_taken_seconds=9.5,
    )
    return PvpMatchSnapshot(
        match_id=uuid4(),
        match_type=match_type,
        status=status,
        created_by_user_id=1,
        created_at=NOW,
        participant_ids=(1, 2),
        players={1: player},
        questions=(
            MatchQuestion(
                question_id="q1",
                prompt="Pick C",
                choices=("A", "B", "C", "D"),
                correct_choice_index=2,
                explanation="C it is.",
            ),
        ),
    )


def test_pvp_routes_require_internal_token_and_user(rate_limiter) -> None:
    client = TestClient(app)

    missing = client.post("/pvp/sessions")
    wrong_token = client.post("/pvp/sessions", headers={"X-Internal-Token": "nope", "X-User-Id": "1"})
    no_user = client.get("/pvp/history", headers={"X-Internal-Token": TOKEN})

    for response in (missing, wrong_token, no_user):
        assert response.status_code == 401
        assert response.json() == {"detail": {"code": "E_UNAUTHORIZED"}}


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (MatchNotFoundError(), 404, "E_MATCH_NOT_FOUND"),
        (MatchForbiddenError(), 403, "E_FORBIDDEN"),
        (MatchClosedError(), 409, "E_MATCH_CLOSED"),
        (QuestionGenerationError(), 502, "E_QUESTION_GENERATION_FAILED"),
        (TransactionRetryExhaustedError("pvp_sync_start_claim", 5), 503, "E_STORE_BUSY"),
    ],
)
def test_start_session_maps_domain_errors(monkeypatch, rate_limiter, error, status_code, code) -> None:
    async def _fake_start(**kwargs):  # noqa: ANN003
        raise error

    monkeypatch.setattr(PvpMatchService, "start_sync_match", _fake_start)
    client = TestClient(app)

    response = client.post(f"/pvp/sessions/{uuid4()}/start", headers=_headers(1))

    assert response.status_code == status_code
    assert response.json() == {"detail": {"code": code}}


def test_submit_rejects_malformed_payload_before_service(monkeypatch, rate_limiter) -> None:
    calls: list[dict] = []

    async def _fake_submit(**kwargs):  # noqa: ANN003
        calls.append(kwargs)
        raise AssertionError("service must not be reached")

    monkeypatch.setattr(PvpMatchService, "submit_sync_match", _fake_submit)
    client = TestClient(app)

    for body in (
        {"selected_answers": {"q1": -1}, "time_taken_seconds": 3},
        {"selected_answers": {"q1": "1"}, "time_taken_seconds": 3},
        {"selected_answers": {"q1": 1}, "time_taken_seconds": -3},
        {"selected_answers": {"q1": 1}},
    ):
        response = client.post(f"/pvp/sessions/{uuid4()}/submit", json=body, headers=_headers(1))
        assert response.status_code == 422

    assert calls == []


def test_submit_hides_answers_until_match_closes(monkeypatch, rate_limiter) -> None:
    results = iter(
        [
            SubmitResult(snapshot=_snapshot("in_progress"), waiting_for_opponent=True),
            SubmitResult(snapshot=_snapshot("completed"), completed_now=True),
        ]
    )

    async def _fake_submit(**kwargs):  # noqa: ANN003
        assert kwargs["selected_answers"] == {"q1": 2}
        assert kwargs["time_taken_seconds"] == 9.5
        return next(results)

    monkeypatch.setattr(PvpMatchService, "submit_sync_match", _fake_submit)
    client = TestClient(app)
    body = {"selected_answers": {"q1": 2}, "time_taken_seconds": 9.5}

    waiting = client.post(f"/pvp/sessions/{uuid4()}/submit", json=body, headers=_headers(1))
    completed = client.post(f"/pvp/sessions/{uuid4()}/submit", json=body, headers=_headers(1))

    assert waiting.status_code == 200
    assert waiting.json()["waiting_for_opponent"] is True
    assert waiting.json()["match"]["questions"][0]["correct_choice_index"] is None
    assert waiting.json()["match"]["questions"][0]["explanation"] is None
    assert completed.json()["completed_now"] is True
    assert completed.json()["match"]["questions"][0]["correct_choice_index"] == 2
    assert completed.json()["match"]["questions"][0]["explanation"] == "C it is."


def test_snapshot_hides_opponent_picks_until_match_closes(monkeypatch, rate_limiter) -> None:
    snapshots = {"in_progress": _snapshot("in_progress"), "completed": _snapshot("completed")}
    status_by_match: dict[str, str] = {}

    async def _fake_snapshot(**kwargs):  # noqa: ANN003
        return snapshots[status_by_match[str(kwargs["match_id"])]]

    monkeypatch.setattr(PvpMatchService, "get_match_snapshot", _fake_snapshot)
    client = TestClient(app)
    live_id, closed_id = str(uuid4()), str(uuid4())
    status_by_match.update({live_id: "in_progress", closed_id: "completed"})

    as_opponent = client.get(f"/pvp/sessions/{live_id}", headers=_headers(2)).json()
    as_owner = client.get(f"/pvp/sessions/{live_id}", headers=_headers(1)).json()
    after_close = client.get(f"/pvp/sessions/{closed_id}", headers=_headers(2)).json()

    hidden = as_opponent["players"][0]
    assert hidden["has_submitted"] is True
    assert hidden["selected_answers"] is None
    assert hidden["score"] is None
    assert as_owner["players"][0]["selected_answers"] == {"q1": 2}
    assert as_owner["players"][0]["score"] == 1
    assert after_close["players"][0]["selected_answers"] == {"q1": 2}
    assert after_close["players"][0]["score"] == 1


def test_async_submit_validation_error_maps_to_422(monkeypatch, rate_limiter) -> None:
    async def _fake_submit(**kwargs):  # noqa: ANN003
        raise InvalidSubmissionError

    monkeypatch.setattr(PvpMatchService, "submit_async_match", _fake_submit)
    client = TestClient(app)

    response = client.post(
        f"/pvp/async/{uuid4()}/submit",
        json={"selected_answers": {}, "time_taken_seconds": 1},
        headers=_headers(1),
    )

    assert response.status_code == 422
    assert response.json() == {"detail": {"code": "E_VALIDATION"}}


def test_challenge_create_is_rate_limited(monkeypatch) -> None:
    monkeypatch.setattr(pvp_helpers, "get_settings", lambda: SimpleNamespace(internal_api_token=TOKEN))
    monkeypatch.setattr(pvp_helpers, "get_rate_limiter", lambda: _DenyAll())

    async def _fake_create(**kwargs):  # noqa: ANN003
        raise AssertionError("service must not be reached")

    monkeypatch.setattr(PvpMatchService, "create_challenge", _fake_create)
    client = TestClient(app)

    response = client.post("/pvp/challenges", json={"challenged_user_id": 2}, headers=_headers(1))

    assert response.status_code == 429
    assert response.json() == {"detail": {"code": "E_RATE_LIMITED"}}


def test_challenge_create_passes_mode_and_maps_conflict(monkeypatch, rate_limiter) -> None:
    seen: list[dict] = []

    async def _fake_create(**kwargs):  # noqa: ANN003
        seen.append(kwargs)
        if len(seen) > 1:
            raise ChallengeExistsError
        return ChallengeSnapshot(
            challenge_id=uuid4(),
            challenger_user_id=kwargs["challenger_user_id"],
            challenged_user_id=kwargs["challenged_user_id"],
            mode=kwargs["mode"],
            status="pending",
            created_at=NOW,
            expires_at=NOW,
        )

    monkeypatch.setattr(PvpMatchService, "create_challenge", _fake_create)
    client = TestClient(app)

    created = client.post(
        "/pvp/challenges",
        json={"challenged_user_id": 2, "mode": "async"},
        headers=_headers(1),
    )
    duplicate = client.post("/pvp/challenges", json={"challenged_user_id": 2}, headers=_headers(1))
    bad_mode = client.post(
        "/pvp/challenges",
        json={"challenged_user_id": 2, "mode": "blitz"},
        headers=_headers(1),
    )

    assert created.status_code == 200
    assert created.json()["mode"] == "async"
    assert created.json()["status"] == "pending"
    assert duplicate.status_code == 409
    assert duplicate.json() == {"detail": {"code": "E_CHALLENGE_EXISTS"}}
    assert bad_mode.status_code == 422
    assert [call["mode"] for call in seen] == ["async", "sync"]
    assert rate_limiter.calls[0] == (1, "challenge_create")


def test_history_route_passes_cursor_and_limit(monkeypatch, rate_limiter) -> None:
    seen: dict[str, object] = {}
    entry = HistoryEntryView(
        match_id=uuid4(),
        match_type="async",
        opponent_user_id=2,
        opponent_display_name="Linus",
        opponent_email=None,
        my_score=4,
        my_total=5,
        my_time_taken_seconds=31.0,
        opponent_score=2,
        opponent_total=5,
        opponent_time_taken_seconds=12.0,
        winner_user_id=1,
        winner_reason="score",
        outcome="win",
        completed_at=NOW,
    )

    async def _fake_list_history(**kwargs):  # noqa: ANN003
        seen.update(kwargs)
        return HistoryPage(entries=[entry], next_cursor="next", has_more=True)

    monkeypatch.setattr(PvpMatchService, "list_history", _fake_list_history)
    client = TestClient(app)

    response = client.get("/pvp/history?limit=1&cursor=abc", headers=_headers(1))
    too_large = client.get("/pvp/history?limit=500", headers=_headers(1))

    assert response.status_code == 200
    assert seen == {"user_id": 1, "cursor": "abc", "limit": 1}
    payload = response.json()
    assert payload["has_more"] is True
    assert payload["next_cursor"] == "next"
    assert payload["history"][0]["outcome"] == "win"
    assert too_large.status_code == 422


def test_sync_session_flow_end_to_end(monkeypatch, rate_limiter) -> None:
    store = install_fake_pvp_store(monkeypatch)
    store.add_user(1, display_name="Ada", email=None)
    store.add_user(2, display_name="Linus", email=None)

    with TestClient(app) as client:
        created = client.post("/pvp/sessions", headers=_headers(1))
        match_id = created.json()["match"]["match_id"]
        joined = client.post(f"/pvp/sessions/{match_id}/join", headers=_headers(2))
        outsider = client.get(f"/pvp/sessions/{match_id}", headers=_headers(3))
        started = client.post(f"/pvp/sessions/{match_id}/start", headers=_headers(1))
        questions = started.json()["match"]["questions"]
        answers = {question["id"]: 0 for question in questions}
        first = client.post(
            f"/pvp/sessions/{match_id}/submit",
            json={"selected_answers": answers, "time_taken_seconds": 20},
            headers=_headers(1),
        )
        second = client.post(
            f"/pvp/sessions/{match_id}/submit",
            json={"selected_answers": answers, "time_taken_seconds": 10},
            headers=_headers(2),
        )
        history = client.get("/pvp/history", headers=_headers(2))

    assert created.status_code == 200
    assert created.json()["resumed"] is False
    assert joined.json()["joined_now"] is True
    assert outsider.status_code == 403
    assert started.json()["started_now"] is True
    assert len(questions) == 5
    assert all(question["correct_choice_index"] is None for question in questions)
    assert first.json()["waiting_for_opponent"] is True
    assert second.json()["completed_now"] is True
    assert second.json()["match"]["winner_user_id"] == 2
    assert second.json()["match"]["winner_reason"] == "time"
    assert history.json()["history"][0]["outcome"] == "win"
