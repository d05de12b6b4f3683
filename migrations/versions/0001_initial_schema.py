"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    prize_pool_status_enum = sa.Enum("active", "completed", name="prize_pool_status_enum")
    prize_pool_status_enum.create(op.get_bind(), checkfirst=True)

    profile_kind_enum = sa.Enum("resolved", "basic", name="profile_kind_enum")
    profile_kind_enum.create(op.get_bind(), checkfirst=True)

    # --- score_entries ---
    op.create_table(
        "score_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period", "user_id", name="uq_score_entry_period_user"),
    )
    op.create_index("ix_score_entries_id", "score_entries", ["id"])
    op.create_index("ix_score_entries_period", "score_entries", ["period"])
    op.create_index(
        "ix_score_entries_period_score_user", "score_entries", ["period", "score", "user_id"]
    )

    # --- weekly_stats ---
    op.create_table(
        "weekly_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("cumulative_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("run_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period", "user_id", name="uq_weekly_stats_period_user"),
    )
    op.create_index("ix_weekly_stats_id", "weekly_stats", ["id"])
    op.create_index("ix_weekly_stats_period", "weekly_stats", ["period"])
    op.create_index("ix_weekly_stats_expires_at", "weekly_stats", ["expires_at"])

    # --- position_records ---
    op.create_table(
        "position_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("board", sa.String(16), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("last_observed_rank", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("board", "user_id", name="uq_position_board_user"),
    )
    op.create_index("ix_position_records_id", "position_records", ["id"])
    op.create_index("ix_position_records_user_id", "position_records", ["user_id"])

    # --- prize_pools ---
    op.create_table(
        "prize_pools",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(32), nullable=False),
        sa.Column("total_prize_pool", sa.Numeric(18, 6), nullable=False),
        sa.Column("sponsor", sa.String(128), nullable=True),
        sa.Column("status", sa.Enum(
            "active", "completed", name="prize_pool_status_enum", create_type=False,
        ), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prize_pools_id", "prize_pools", ["id"])
    op.create_index("ix_prize_pools_period", "prize_pools", ["period"], unique=True)

    # --- prize_archives ---
    op.create_table(
        "prize_archives",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(32), nullable=False),
        sa.Column("total_prize_pool", sa.Numeric(18, 6), nullable=False),
        sa.Column("distribution", sa.Text(), nullable=False),
        sa.Column("status", sa.Enum(
            "active", "completed", name="prize_pool_status_enum", create_type=False,
        ), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prize_archives_id", "prize_archives", ["id"])
    op.create_index("ix_prize_archives_period", "prize_archives", ["period"], unique=True)

    # --- run_records ---
    op.create_table(
        "run_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("seed", sa.String(256), nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("streak", sa.Integer(), nullable=False),
        sa.Column("pool_snapshot_id", sa.String(128), nullable=True),
        sa.Column("reprieve_rounds", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("guesses", sa.Text(), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_run_records_id", "run_records", ["id"])
    op.create_index("ix_run_records_run_id", "run_records", ["run_id"], unique=True)
    op.create_index("ix_run_records_user_id", "run_records", ["user_id"])

    # --- token_pool_snapshots ---
    op.create_table(
        "token_pool_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("snapshot_id", sa.String(128), nullable=False),
        sa.Column("tokens", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_token_pool_snapshots_id", "token_pool_snapshots", ["id"])
    op.create_index(
        "ix_token_pool_snapshots_snapshot_id", "token_pool_snapshots", ["snapshot_id"], unique=True
    )

    # --- user_profiles ---
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("kind", sa.Enum(
            "resolved", "basic", name="profile_kind_enum", create_type=False,
        ), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=False),
        sa.Column("avatar_url", sa.String(512), nullable=True),
        sa.Column("source", sa.String(32), nullable=False, server_default="address"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_id", "user_profiles", ["id"])
    op.create_index("ix_user_profiles_user_id", "user_profiles", ["user_id"], unique=True)


def downgrade() -> None:
    op.drop_table("user_profiles")
    op.drop_table("token_pool_snapshots")
    op.drop_table("run_records")
    op.drop_table("prize_archives")
    op.drop_table("prize_pools")
    op.drop_table("position_records")
    op.drop_table("weekly_stats")
    op.drop_table("score_entries")

    op.execute("DROP TYPE IF EXISTS profile_kind_enum")
    op.execute("DROP TYPE IF EXISTS prize_pool_status_enum")
