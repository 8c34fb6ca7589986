"""pipeline scoring schema: deals, tracking inputs, score history and run audit

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "recommendations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("snoozed_until", sa.DateTime(), nullable=True),
        sa.Column("snooze_reason", sa.Text(), nullable=True),
        sa.Column("revived_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('draft', 'sent', 'declined', 'accepted', 'archived')",
            name="ck_recommendations_status",
        ),
    )
    op.create_index("idx_recommendations_status", "recommendations", ["status"])

    op.create_table(
        "recommendation_items",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("onetime_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_free", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recommendation_items_recommendation_id", "recommendation_items", ["recommendation_id"])

    op.create_table(
        "recommendation_invites",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("email_opened_at", sa.DateTime(), nullable=True),
        sa.Column("account_created_at", sa.DateTime(), nullable=True),
        sa.Column("viewed_at", sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recommendation_invites_recommendation_id", "recommendation_invites", ["recommendation_id"])

    op.create_table(
        "recommendation_communications",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("direction", sa.String(length=10), nullable=False),
        sa.Column("channel", sa.String(length=30), nullable=False),
        sa.Column("contact_at", sa.DateTime(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("logged_by", sa.String(length=64), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_communications_direction"),
    )
    op.create_index(
        "idx_communications_rec_contact",
        "recommendation_communications",
        ["recommendation_id", "contact_at"],
    )

    op.create_table(
        "recommendation_call_scores",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("budget_clarity", sa.String(length=20), nullable=True),
        sa.Column("competition", sa.String(length=20), nullable=True),
        sa.Column("engagement", sa.String(length=20), nullable=True),
        sa.Column("plan_fit", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("recommendation_id"),
    )

    op.create_table(
        "pipeline_score_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("confidence_score", sa.Integer(), nullable=False),
        sa.Column("confidence_percent", sa.Float(), nullable=False),
        sa.Column("weighted_monthly", sa.Float(), nullable=False),
        sa.Column("weighted_onetime", sa.Float(), nullable=False),
        sa.Column("base_score", sa.Integer(), nullable=False),
        sa.Column("total_penalties", sa.Float(), nullable=False),
        sa.Column("total_bonus", sa.Float(), nullable=False),
        sa.Column("breakdown", sa.JSON(), nullable=True),
        sa.Column("trigger_source", sa.String(length=30), nullable=False),
        sa.Column("scored_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("confidence_score BETWEEN 0 AND 100", name="ck_score_history_score_range"),
        sa.CheckConstraint("confidence_percent BETWEEN 0 AND 1", name="ck_score_history_percent_range"),
        sa.CheckConstraint(
            "trigger_source IN ('manual_refresh', 'webhook', 'cron', 'ui_action')",
            name="ck_score_history_trigger_source",
        ),
    )
    op.create_index(
        "idx_score_history_rec_scored",
        "pipeline_score_history",
        ["recommendation_id", "scored_at"],
    )

    op.create_table(
        "pipeline_scoring_runs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("run_type", sa.String(length=30), nullable=False),
        sa.Column("processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timed_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("errors", sa.JSON(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pipeline_score_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recommendation_id", sa.String(length=36), nullable=False),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_score_events_unprocessed", "pipeline_score_events", ["processed_at"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_index("idx_score_events_unprocessed", table_name="pipeline_score_events")
    op.drop_table("pipeline_score_events")
    op.drop_table("pipeline_scoring_runs")
    op.drop_index("idx_score_history_rec_scored", table_name="pipeline_score_history")
    op.drop_table("pipeline_score_history")
    op.drop_table("recommendation_call_scores")
    op.drop_index("idx_communications_rec_contact", table_name="recommendation_communications")
    op.drop_table("recommendation_communications")
    op.drop_index("ix_recommendation_invites_recommendation_id", table_name="recommendation_invites")
    op.drop_table("recommendation_invites")
    op.drop_index("ix_recommendation_items_recommendation_id", table_name="recommendation_items")
    op.drop_table("recommendation_items")
    op.drop_index("idx_recommendations_status", table_name="recommendations")
    op.drop_table("recommendations")
