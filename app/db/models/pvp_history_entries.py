from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PvpHistoryEntry(Base):
    __tablename__ = "pvp_history_entries"
    __table_args__ = (
        CheckConstraint("outcome IN ('win','loss','draw')", name="ck_pvp_history_entries_outcome"),
        CheckConstraint(
            "match_type IN ('sync','async')",
            name="ck_pvp_history_entries_match_type",
        ),
        CheckConstraint(
            "winner_reason IN ('score','time','tie')",
            name="ck_pvp_history_entries_winner_reason",
        ),
        Index("idx_pvp_history_user_completed", "user_id", "completed_at"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), primary_key=True)
    match_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("pvp_matches.id"), primary_key=True
    )
    match_type: Mapped[str] = mapped_column(String(8), nullable=False)
    opponent_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    opponent_display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    opponent_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    my_score: Mapped[int] = mapped_column(Integer, nullable=False)
    my_total: Mapped[int] = mapped_column(Integer, nullable=False)
    my_time_taken_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    opponent_score: Mapped[int] = mapped_column(Integer, nullable=False)
    opponent_total: Mapped[int] = mapped_column(Integer, nullable=False)
    opponent_time_taken_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    winner_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    winner_reason: Mapped[str] = mapped_column(String(16), nullable=False)
    outcome: Mapped[str] = mapped_column(String(8), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
