from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, tuple_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.pvp_history_entries import PvpHistoryEntry


class PvpHistoryRepo:
    @staticmethod
    async def insert_if_absent(
        session: AsyncSession,
        *,
        values: dict[str, object],
    ) -> bool:
        stmt = (
            postgresql_insert(PvpHistoryEntry)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=[PvpHistoryEntry.user_id, PvpHistoryEntry.match_id]
            )
            .returning(PvpHistoryEntry.match_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_page_for_user(
        session: AsyncSession,
        *,
        user_id: int,
        before: tuple[datetime, UUID] | None,
        limit: int,
    ) -> list[PvpHistoryEntry]:
        stmt = select(PvpHistoryEntry).where(PvpHistoryEntry.user_id == user_id)
        if before is not None:
            stmt = stmt.where(
                tuple_(PvpHistoryEntry.completed_at, PvpHistoryEntry.match_id) < tuple_(*before)
            )
        stmt = stmt.order_by(
            PvpHistoryEntry.completed_at.desc(),
            PvpHistoryEntry.match_id.desc(),
        ).limit(max(1, int(limit)))
        result = await session.execute(stmt)
        return list(result.scalars().all())
