from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import httpx
import structlog

from app.core.config import get_settings
from app.services.internal_auth import INTERNAL_TOKEN_HEADER

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Relationship:
    are_friends: bool
    is_blocked: bool

    @property
    def allows_challenge(self) -> bool:
        return self.are_friends and not self.is_blocked


DENIED_RELATIONSHIP = Relationship(are_friends=False, is_blocked=True)


class RelationshipChecker(Protocol):
    async def check(self, *, user_id: int, other_user_id: int) -> Relationship: ...


class HttpRelationshipChecker:
    def __init__(self, *, base_url: str, token: str, timeout_seconds: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds

    async def check(self, *, user_id: int, other_user_id: int) -> Relationship:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.get(
                    f"{self._base_url}/relationships",
                    params={"user_id": user_id, "other_user_id": other_user_id},
                    headers={INTERNAL_TOKEN_HEADER: self._token},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "relationship_check_failed",
                user_id=user_id,
                other_user_id=other_user_id,
                error_type=type(exc).__name__,
            )
            return DENIED_RELATIONSHIP

        if not isinstance(payload, dict):
            return DENIED_RELATIONSHIP
        return Relationship(
            are_friends=payload.get("friends") is True,
            is_blocked=payload.get("blocked") is not False,
        )


class OpenRelationshipChecker:
    """Local development stand-in: every pair counts as friends."""

    async def check(self, *, user_id: int, other_user_id: int) -> Relationship:
        del user_id, other_user_id
        return Relationship(are_friends=True, is_blocked=False)


class ClosedRelationshipChecker:
    async def check(self, *, user_id: int, other_user_id: int) -> Relationship:
        logger.warning(
            "relationship_check_unconfigured",
            user_id=user_id,
            other_user_id=other_user_id,
        )
        return DENIED_RELATIONSHIP


@lru_cache(maxsize=1)
def get_relationship_checker() -> RelationshipChecker:
    settings = get_settings()
    if settings.social_api_url:
        return HttpRelationshipChecker(
            base_url=settings.social_api_url,
            token=settings.internal_api_token,
            timeout_seconds=settings.social_api_timeout_seconds,
        )
    if settings.app_env == "dev":
        return OpenRelationshipChecker()
    return ClosedRelationshipChecker()
