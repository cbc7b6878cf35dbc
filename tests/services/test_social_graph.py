from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from app.services import social_graph
from app.services.social_graph import (
    ClosedRelationshipChecker,
    HttpRelationshipChecker,
    OpenRelationshipChecker,
    Relationship,
)


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> None:  # noqa: ANN001
    real_async_client = httpx.AsyncClient

    def _client_factory(**kwargs):  # noqa: ANN003
        return real_async_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(social_graph.httpx, "AsyncClient", _client_factory)


def test_relationship_allows_challenge_only_for_unblocked_friends() -> None:
    assert Relationship(are_friends=True, is_blocked=False).allows_challenge is True
    assert Relationship(are_friends=True, is_blocked=True).allows_challenge is False
    assert Relationship(are_friends=False, is_blocked=False).allows_challenge is False


@pytest.mark.asyncio
async def test_http_checker_reads_relationship_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["token"] = request.headers.get("X-Internal-Token")
        return httpx.Response(200, json={"friends": True, "blocked": False})

    _patch_transport(monkeypatch, _handler)
    checker = HttpRelationshipChecker(base_url="http://social.test/", token="secret", timeout_seconds=1.0)

    relationship = await checker.check(user_id=1, other_user_id=2)

    assert relationship.allows_challenge is True
    assert seen == {
        "path": "/relationships",
        "params": {"user_id": "1", "other_user_id": "2"},
        "token": "secret",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=["friends"]),
        httpx.Response(200, json={"friends": True}),
    ],
)
async def test_http_checker_denies_on_failure_or_ambiguous_payload(
    monkeypatch: pytest.MonkeyPatch,
    response: httpx.Response,
) -> None:
    _patch_transport(monkeypatch, lambda request: response)
    checker = HttpRelationshipChecker(base_url="http://social.test", token="secret", timeout_seconds=1.0)

    relationship = await checker.check(user_id=1, other_user_id=2)

    assert relationship.allows_challenge is False


@pytest.mark.asyncio
async def test_http_checker_denies_when_service_unreachable(monkeypatch: pytest.MonkeyPatch) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    _patch_transport(monkeypatch, _handler)
    checker = HttpRelationshipChecker(base_url="http://social.test", token="secret", timeout_seconds=1.0)

    assert (await checker.check(user_id=1, other_user_id=2)).allows_challenge is False


def test_get_relationship_checker_picks_by_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    cases = (
        (SimpleNamespace(social_api_url=None, app_env="dev"), OpenRelationshipChecker),
        (SimpleNamespace(social_api_url=None, app_env="prod"), ClosedRelationshipChecker),
        (
            SimpleNamespace(
                social_api_url="http://social.test",
                app_env="prod",
                internal_api_token="secret",
                social_api_timeout_seconds=2.0,
            ),
            HttpRelationshipChecker,
        ),
    )
    for settings, expected_type in cases:
        monkeypatch.setattr(social_graph, "get_settings", lambda settings=settings: settings)
        social_graph.get_relationship_checker.cache_clear()
        assert isinstance(social_graph.get_relationship_checker(), expected_type)
    social_graph.get_relationship_checker.cache_clear()
