from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PvpMatch(Base):
    __tablename__ = "pvp_matches"
    __table_args__ = (
        CheckConstraint(
            "match_type IN ('sync','async')",
            name="ck_pvp_matches_match_type",
        ),
        CheckConstraint(
            (
                "status IN ("
                "'waiting','ready','in_progress','open','awaiting_opponent',"
                "'completed','expired','forfeited'"
                ")"
            ),
            name="ck_pvp_matches_status",
        ),
        CheckConstraint(
            "winner_reason IS NULL OR winner_reason IN ('score','time','tie')",
            name="ck_pvp_matches_winner_reason",
        ),
        CheckConstraint(
            "second_user_id IS NULL OR second_user_id <> first_user_id",
            name="ck_pvp_matches_distinct_participants",
        ),
        CheckConstraint(
            "status <> 'completed' OR (completed_at IS NOT NULL AND winner_reason IS NOT NULL)",
            name="ck_pvp_matches_completed_has_result",
        ),
        CheckConstraint(
            "status = 'completed' OR (winner_user_id IS NULL AND winner_reason IS NULL)",
            name="ck_pvp_matches_winner_only_when_completed",
        ),
        Index("idx_pvp_matches_first_created", "first_user_id", "created_at"),
        Index("idx_pvp_matches_second_created", "second_user_id", "created_at"),
        Index("idx_pvp_matches_status_expires", "status", "expires_at"),
        Index("idx_pvp_matches_type_status_completed", "match_type", "status", "completed_at"),
        Index("idx_pvp_matches_challenge", "challenge_id"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    match_type: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False)
    created_by_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    first_user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    second_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    players: Mapped[dict[str, dict[str, object]]] = mapped_column(JSONB, nullable=False)
    questions: Mapped[list[dict[str, object]]] = mapped_column(JSONB, nullable=False)
    challenge_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    winner_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    winner_reason: Mapped[str | None] = mapped_column(String(16), nullable=True)
    generation_claim_token: Mapped[str | None] = mapped_column(String(32), nullable=True)
    generation_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def participant_ids(self) -> tuple[int, ...]:
        if self.second_user_id is None:
            return (self.first_user_id,)
        return (self.first_user_id, self.second_user_id)
