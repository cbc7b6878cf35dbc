from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_exists(session: AsyncSession, *, user_ids: Sequence[int]) -> None:
        ids = sorted({int(user_id) for user_id in user_ids})
        if not ids:
            return
        stmt = (
            postgresql_insert(User)
            .values([{"id": user_id} for user_id in ids])
            .on_conflict_do_nothing(index_elements=[User.id])
        )
        await session.execute(stmt)

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        user_id: int | None = None,
        display_name: str | None,
        email: str | None,
    ) -> User:
        user = User(
            id=user_id,
            display_name=display_name,
            email=email,
            active_pvp_match_id=None,
        )
        session.add(user)
        await session.flush()
        return user

    @staticmethod
    async def set_active_pvp_match(
        session: AsyncSession,
        *,
        user_ids: Sequence[int],
        match_id: UUID | None,
    ) -> int:
        ids = tuple({int(user_id) for user_id in user_ids})
        if not ids:
            return 0
        stmt = update(User).where(User.id.in_(ids)).values(active_pvp_match_id=match_id)
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def clear_active_pvp_match(
        session: AsyncSession,
        *,
        user_ids: Sequence[int],
        match_id: UUID,
    ) -> int:
        ids = tuple({int(user_id) for user_id in user_ids})
        if not ids:
            return 0
        stmt = (
            update(User)
            .where(User.id.in_(ids), User.active_pvp_match_id == match_id)
            .values(active_pvp_match_id=None)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
