from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PvpChallenge(Base):
    __tablename__ = "pvp_challenges"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','accepted','declined','expired')",
            name="ck_pvp_challenges_status",
        ),
        CheckConstraint("mode IN ('sync','async')", name="ck_pvp_challenges_mode"),
        CheckConstraint(
            "challenger_user_id <> challenged_user_id",
            name="ck_pvp_challenges_not_self",
        ),
        Index("idx_pvp_challenges_challenged_status", "challenged_user_id", "status", "created_at"),
        Index("idx_pvp_challenges_challenger_status", "challenger_user_id", "status", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    challenger_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    challenged_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    mode: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    match_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
