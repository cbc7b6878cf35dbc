from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.rate_limit import CooldownRateLimiter


class _FakeRedis:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.keys: dict[str, int] = {}

    async def set(self, key: str, value: str, *, nx: bool, px: int):  # noqa: ANN201
        if self.fail:
            raise RedisConnectionError("redis down")
        assert nx is True
        if key in self.keys:
            return None
        self.keys[key] = px
        return True


def test_build_key_scopes_by_action_and_user() -> None:
    assert CooldownRateLimiter.build_key(user_id=7, action="challenge_create") == (
        "pvp:rate:challenge_create:7"
    )


@pytest.mark.asyncio
async def test_allow_blocks_second_call_inside_window() -> None:
    redis = _FakeRedis()
    limiter = CooldownRateLimiter(redis, window_ms=1500)

    assert await limiter.allow(user_id=7, action="challenge_create") is True
    assert await limiter.allow(user_id=7, action="challenge_create") is False
    assert await limiter.allow(user_id=7, action="challenge_accept") is True
    assert await limiter.allow(user_id=8, action="challenge_create") is True
    assert redis.keys["pvp:rate:challenge_create:7"] == 1500


@pytest.mark.asyncio
async def test_allow_fails_open_when_redis_is_unavailable() -> None:
    limiter = CooldownRateLimiter(_FakeRedis(fail=True), window_ms=1000)

    assert await limiter.allow(user_id=7, action="async_inbox") is True
