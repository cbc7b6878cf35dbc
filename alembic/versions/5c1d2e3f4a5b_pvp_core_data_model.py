"""pvp_core_data_model

Revision ID: 5c1d2e3f4a5b
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1d2e3f4a5b"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("active_pvp_match_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_users_active_pvp_match", "users", ["active_pvp_match_id"])
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "pvp_challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("challenger_user_id", sa.BigInteger(), nullable=False),
        sa.Column("challenged_user_id", sa.BigInteger(), nullable=False),
        sa.Column("mode", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("match_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','accepted','declined','expired')",
            name="ck_pvp_challenges_status",
        ),
        sa.CheckConstraint("mode IN ('sync','async')", name="ck_pvp_challenges_mode"),
        sa.CheckConstraint("challenger_user_id <> challenged_user_id", name="ck_pvp_challenges_not_self"),
        sa.ForeignKeyConstraint(["challenger_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["challenged_user_id"], ["users.id"]),
    )
    op.create_index(
        "idx_pvp_challenges_challenged_status",
        "pvp_challenges",
        ["challenged_user_id", "status", "created_at"],
    )
    op.create_index(
        "idx_pvp_challenges_challenger_status",
        "pvp_challenges",
        ["challenger_user_id", "status", "created_at"],
    )

    op.create_table(
        "pvp_matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("match_type", sa.String(8), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("created_by_user_id", sa.BigInteger(), nullable=False),
        sa.Column("first_user_id", sa.BigInteger(), nullable=False),
        sa.Column("second_user_id", sa.BigInteger(), nullable=True),
        sa.Column("players", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("questions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("winner_user_id", sa.BigInteger(), nullable=True),
        sa.Column("winner_reason", sa.String(16), nullable=True),
        sa.Column("generation_claim_token", sa.String(32), nullable=True),
        sa.Column("generation_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("match_type IN ('sync','async')", name="ck_pvp_matches_match_type"),
        sa.CheckConstraint(
            "status IN ('waiting','ready','in_progress','open','awaiting_opponent','completed','expired','forfeited')",
            name="ck_pvp_matches_status",
        ),
        sa.CheckConstraint(
            "winner_reason IS NULL OR winner_reason IN ('score','time','tie')",
            name="ck_pvp_matches_winner_reason",
        ),
        sa.CheckConstraint(
            "second_user_id IS NULL OR second_user_id <> first_user_id",
            name="ck_pvp_matches_distinct_participants",
        ),
        sa.CheckConstraint(
            "status <> 'completed' OR (completed_at IS NOT NULL AND winner_reason IS NOT NULL)",
            name="ck_pvp_matches_completed_has_result",
        ),
        sa.CheckConstraint(
            "status = 'completed' OR (winner_user_id IS NULL AND winner_reason IS NULL)",
            name="ck_pvp_matches_winner_only_when_completed",
        ),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["first_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["second_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["winner_user_id"], ["users.id"]),
    )
    op.create_index("idx_pvp_matches_first_created", "pvp_matches", ["first_user_id", "created_at"])
    op.create_index("idx_pvp_matches_second_created", "pvp_matches", ["second_user_id", "created_at"])
    op.create_index("idx_pvp_matches_status_expires", "pvp_matches", ["status", "expires_at"])
    op.create_index(
        "idx_pvp_matches_type_status_completed",
        "pvp_matches",
        ["match_type", "status", "completed_at"],
    )
    op.create_index("idx_pvp_matches_challenge", "pvp_matches", ["challenge_id"])

    op.create_table(
        "pvp_history_entries",
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("match_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("match_type", sa.String(8), nullable=False),
        sa.Column("opponent_user_id", sa.BigInteger(), nullable=True),
        sa.Column("opponent_display_name", sa.Text(), nullable=True),
        sa.Column("opponent_email", sa.Text(), nullable=True),
        sa.Column("my_score", sa.Integer(), nullable=False),
        sa.Column("my_total", sa.Integer(), nullable=False),
        sa.Column("my_time_taken_seconds", sa.Float(), nullable=False),
        sa.Column("opponent_score", sa.Integer(), nullable=False),
        sa.Column("opponent_total", sa.Integer(), nullable=False),
        sa.Column("opponent_time_taken_seconds", sa.Float(), nullable=False),
        sa.Column("winner_user_id", sa.BigInteger(), nullable=True),
        sa.Column("winner_reason", sa.String(16), nullable=False),
        sa.Column("outcome", sa.String(8), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("outcome IN ('win','loss','draw')", name="ck_pvp_history_entries_outcome"),
        sa.CheckConstraint("match_type IN ('sync','async')", name="ck_pvp_history_entries_match_type"),
        sa.CheckConstraint(
            "winner_reason IN ('score','time','tie')",
            name="ck_pvp_history_entries_winner_reason",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["match_id"], ["pvp_matches.id"]),
        sa.PrimaryKeyConstraint("user_id", "match_id"),
    )
    op.create_index(
        "idx_pvp_history_user_completed",
        "pvp_history_entries",
        ["user_id", "completed_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_pvp_history_user_completed", table_name="pvp_history_entries")
    op.drop_table("pvp_history_entries")

    op.drop_index("idx_pvp_matches_challenge", table_name="pvp_matches")
    op.drop_index("idx_pvp_matches_type_status_completed", table_name="pvp_matches")
    op.drop_index("idx_pvp_matches_status_expires", table_name="pvp_matches")
    op.drop_index("idx_pvp_matches_second_created", table_name="pvp_matches")
    op.drop_index("idx_pvp_matches_first_created", table_name="pvp_matches")
    op.drop_table("pvp_matches")

    op.drop_index("idx_pvp_challenges_challenger_status", table_name="pvp_challenges")
    op.drop_index("idx_pvp_challenges_challenged_status", table_name="pvp_challenges")
    op.drop_table("pvp_challenges")

    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_index("idx_users_active_pvp_match", table_name="users")
    op.drop_table("users")
