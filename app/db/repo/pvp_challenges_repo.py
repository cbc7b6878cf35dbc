from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pvp_challenges import PvpChallenge


class PvpChallengesRepo:
    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession, challenge_id: UUID
    ) -> PvpChallenge | None:
        stmt = select(PvpChallenge).where(PvpChallenge.id == challenge_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, challenge: PvpChallenge) -> PvpChallenge:
        session.add(challenge)
        await session.flush()
        return challenge

    @staticmethod
    async def get_pending_between(
        session: AsyncSession,
        *,
        first_user_id: int,
        second_user_id: int,
    ) -> PvpChallenge | None:
        stmt = (
            select(PvpChallenge)
            .where(
                PvpChallenge.status == "pending",
                or_(
                    and_(
                        PvpChallenge.challenger_user_id == first_user_id,
                        PvpChallenge.challenged_user_id == second_user_id,
                    ),
                    and_(
                        PvpChallenge.challenger_user_id == second_user_id,
                        PvpChallenge.challenged_user_id == first_user_id,
                    ),
                ),
            )
            .order_by(PvpChallenge.created_at.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_pending_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        limit: int,
    ) -> list[PvpChallenge]:
        stmt = (
            select(PvpChallenge)
            .where(
                PvpChallenge.status == "pending",
                or_(
                    PvpChallenge.challenger_user_id == user_id,
                    PvpChallenge.challenged_user_id == user_id,
                ),
            )
            .order_by(PvpChallenge.created_at.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
