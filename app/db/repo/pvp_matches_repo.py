from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pvp_matches import PvpMatch


def _participant_filter(user_id: int):
    return or_(PvpMatch.first_user_id == user_id, PvpMatch.second_user_id == user_id)


class PvpMatchesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, match_id: UUID) -> PvpMatch | None:
        return await session.get(PvpMatch, match_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, match_id: UUID) -> PvpMatch | None:
        stmt = (
            select(PvpMatch)
            .where(PvpMatch.id == match_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, match: PvpMatch) -> PvpMatch:
        session.add(match)
        await session.flush()
        return match

    @staticmethod
    async def list_live_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        match_type: str,
        exclude_statuses: Sequence[str],
        limit: int,
    ) -> list[PvpMatch]:
        stmt = (
            select(PvpMatch)
            .where(
                _participant_filter(user_id),
                PvpMatch.match_type == match_type,
                PvpMatch.status.not_in(tuple(exclude_statuses)),
            )
            .order_by(PvpMatch.created_at.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_for_user_by_statuses(
        session: AsyncSession,
        *,
        user_id: int,
        match_type: str,
        statuses: Sequence[str],
        limit: int,
    ) -> list[PvpMatch]:
        stmt = (
            select(PvpMatch)
            .where(
                _participant_filter(user_id),
                PvpMatch.match_type == match_type,
                PvpMatch.status.in_(tuple(statuses)),
            )
            .order_by(PvpMatch.created_at.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_completed_for_user_page(
        session: AsyncSession,
        *,
        user_id: int,
        before: tuple[datetime, UUID] | None,
        limit: int,
    ) -> list[PvpMatch]:
        stmt = select(PvpMatch).where(
            _participant_filter(user_id),
            PvpMatch.status == "completed",
            PvpMatch.completed_at.is_not(None),
        )
        if before is not None:
            stmt = stmt.where(tuple_(PvpMatch.completed_at, PvpMatch.id) < tuple_(*before))
        stmt = stmt.order_by(PvpMatch.completed_at.desc(), PvpMatch.id.desc()).limit(
            max(1, int(limit))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_async_due_for_expire_for_update(
        session: AsyncSession,
        *,
        now_utc: datetime,
        live_statuses: Sequence[str],
        limit: int,
    ) -> list[PvpMatch]:
        stmt = (
            select(PvpMatch)
            .where(
                PvpMatch.match_type == "async",
                PvpMatch.status.in_(tuple(live_statuses)),
                PvpMatch.expires_at <= now_utc,
            )
            .order_by(PvpMatch.expires_at.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
