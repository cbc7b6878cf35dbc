from __future__ import annotations

from functools import lru_cache

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

RATE_LIMIT_KEY_PREFIX = "pvp:rate"


class CooldownRateLimiter:
    """One call per user and action inside a rolling cooldown window."""

    def __init__(self, redis_client: Redis, *, window_ms: int) -> None:
        self._redis = redis_client
        self._window_ms = max(1, int(window_ms))

    @staticmethod
    def build_key(*, user_id: int, action: str) -> str:
        return f"{RATE_LIMIT_KEY_PREFIX}:{action}:{user_id}"

    async def allow(self, *, user_id: int, action: str) -> bool:
        key = self.build_key(user_id=user_id, action=action)
        try:
            acquired = await self._redis.set(key, "1", nx=True, px=self._window_ms)
        except RedisError as exc:
            # Cooldowns only smooth bursts; match state is guarded by the store.
            logger.warning(
                "pvp_rate_limit_unavailable",
                action=action,
                user_id=user_id,
                error_type=type(exc).__name__,
            )
            return True
        if not acquired:
            logger.info("pvp_rate_limited", action=action, user_id=user_id)
        return bool(acquired)


@lru_cache(maxsize=1)
def get_rate_limiter() -> CooldownRateLimiter:
    settings = get_settings()
    return CooldownRateLimiter(
        Redis.from_url(settings.redis_url),
        window_ms=settings.pvp_rate_limit_window_ms,
    )
