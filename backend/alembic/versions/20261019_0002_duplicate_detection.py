"""add duplicate candidate registry, merge log and scan runs

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:02
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0002"
down_revision: str | None = "20261019_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "venue_duplicate_candidates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("venue1_id", sa.Integer(), nullable=False),
        sa.Column("venue2_id", sa.Integer(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("name_similarity", sa.Float(), nullable=False),
        sa.Column("location_similarity", sa.Float(), nullable=False),
        sa.Column("match_criteria", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("venue1_id < venue2_id", name="ck_venue_duplicate_candidates_order"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("venue1_id", "venue2_id", name="uq_venue_duplicate_candidates_pair"),
    )
    op.create_index(
        "ix_venue_duplicate_candidates_venue1_id",
        "venue_duplicate_candidates",
        ["venue1_id"],
        unique=False,
    )
    op.create_index(
        "ix_venue_duplicate_candidates_venue2_id",
        "venue_duplicate_candidates",
        ["venue2_id"],
        unique=False,
    )
    op.create_index(
        "ix_venue_duplicate_candidates_confidence_score",
        "venue_duplicate_candidates",
        ["confidence_score"],
        unique=False,
    )
    op.create_index(
        "ix_venue_duplicate_candidates_status",
        "venue_duplicate_candidates",
        ["status"],
        unique=False,
    )

    op.create_table(
        "venue_merge_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("primary_venue_id", sa.Integer(), nullable=False),
        sa.Column("secondary_venue_id", sa.Integer(), nullable=False),
        sa.Column("performed_by", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_venue_merge_logs_action_type", "venue_merge_logs", ["action_type"], unique=False)
    op.create_index("ix_venue_merge_logs_primary_venue_id", "venue_merge_logs", ["primary_venue_id"], unique=False)
    op.create_index(
        "ix_venue_merge_logs_secondary_venue_id",
        "venue_merge_logs",
        ["secondary_venue_id"],
        unique=False,
    )

    op.create_table(
        "duplicate_scan_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("options_json", sa.JSON(), nullable=False),
        sa.Column("stats_json", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_duplicate_scan_runs_status", "duplicate_scan_runs", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_duplicate_scan_runs_status", table_name="duplicate_scan_runs")
    op.drop_table("duplicate_scan_runs")
    op.drop_index("ix_venue_merge_logs_secondary_venue_id", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_primary_venue_id", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_action_type", table_name="venue_merge_logs")
    op.drop_table("venue_merge_logs")
    op.drop_index("ix_venue_duplicate_candidates_status", table_name="venue_duplicate_candidates")
    op.drop_index("ix_venue_duplicate_candidates_confidence_score", table_name="venue_duplicate_candidates")
    op.drop_index("ix_venue_duplicate_candidates_venue2_id", table_name="venue_duplicate_candidates")
    op.drop_index("ix_venue_duplicate_candidates_venue1_id", table_name="venue_duplicate_candidates")
    op.drop_table("venue_duplicate_candidates")
