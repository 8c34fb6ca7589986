"""pipeline archiving: archive/revive columns, archive history, history sequence

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:02
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None

ARCHIVE_REASONS = (
    "went_dark",
    "budget",
    "timing",
    "chose_competitor",
    "handling_in_house",
    "not_a_fit",
    "key_contact_left",
    "business_closed",
    "duplicate",
    "other",
)


def _in_list(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def upgrade() -> None:
    with op.batch_alter_table("recommendations") as batch:
        batch.add_column(sa.Column("archived_at", sa.DateTime(), nullable=True))
        batch.add_column(sa.Column("archived_by", sa.String(length=64), nullable=True))
        batch.add_column(sa.Column("archive_reason", sa.String(length=30), nullable=True))
        batch.add_column(sa.Column("archive_notes", sa.Text(), nullable=True))
        batch.add_column(sa.Column("revived_by", sa.String(length=64), nullable=True))
        batch.create_check_constraint(
            "ck_recommendations_archive_reason",
            f"archive_reason IS NULL OR archive_reason IN ({_in_list(ARCHIVE_REASONS)})",
        )
    op.create_index("idx_recommendations_archived", "recommendations", ["archived_at"])

    op.create_table(
        "pipeline_archive_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(length=30), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("confidence_score_at_action", sa.Integer(), nullable=True),
        sa.Column("performed_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("action IN ('archived', 'revived')", name="ck_archive_history_action"),
    )
    op.create_index("idx_archive_history_rec", "pipeline_archive_history", ["recommendation_id", "created_at"])

    with op.batch_alter_table("pipeline_score_history") as batch:
        batch.add_column(sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"))

    # Number existing rows per deal in (scored_at, id) order before enforcing uniqueness.
    op.execute(
        """
        UPDATE pipeline_score_history
        SET sequence = (
            SELECT COUNT(*)
            FROM pipeline_score_history AS earlier
            WHERE earlier.recommendation_id = pipeline_score_history.recommendation_id
              AND (
                earlier.scored_at < pipeline_score_history.scored_at
                OR (earlier.scored_at = pipeline_score_history.scored_at AND earlier.id <= pipeline_score_history.id)
              )
        )
        """
    )

    with op.batch_alter_table("pipeline_score_history") as batch:
        batch.create_unique_constraint("uq_score_history_rec_sequence", ["recommendation_id", "sequence"])


def downgrade() -> None:
    with op.batch_alter_table("pipeline_score_history") as batch:
        batch.drop_constraint("uq_score_history_rec_sequence", type_="unique")
        batch.drop_column("sequence")

    op.drop_index("idx_archive_history_rec", table_name="pipeline_archive_history")
    op.drop_table("pipeline_archive_history")

    op.drop_index("idx_recommendations_archived", table_name="recommendations")
    with op.batch_alter_table("recommendations") as batch:
        batch.drop_constraint("ck_recommendations_archive_reason", type_="check")
        batch.drop_column("revived_by")
        batch.drop_column("archive_notes")
        batch.drop_column("archive_reason")
        batch.drop_column("archived_by")
        batch.drop_column("archived_at")
