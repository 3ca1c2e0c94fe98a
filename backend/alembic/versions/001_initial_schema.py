"""Initial schema: campaigns, keywords, daily metrics, approval queue and history.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = set(insp.get_table_names())

    if "campaigns" not in existing:
        op.create_table(
            "campaigns",
            sa.Column("id", sa.String(255), nullable=False),
            sa.Column("name", sa.String(512), nullable=False),
            sa.Column("campaign_type", sa.String(50), nullable=True),
            sa.Column("state", sa.String(20), nullable=False),
            sa.Column("daily_budget", sa.Float(), nullable=False),
            sa.Column("start_date", sa.String(20), nullable=True),
            sa.Column("end_date", sa.String(20), nullable=True),
            sa.Column("targeting_type", sa.String(20), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_campaigns_state", "campaigns", ["state"], unique=False)

    if "keywords" not in existing:
        op.create_table(
            "keywords",
            sa.Column("id", sa.String(255), nullable=False),
            sa.Column("ad_group_id", sa.String(255), nullable=False),
            sa.Column("campaign_id", sa.String(255), nullable=False),
            sa.Column("keyword_text", sa.Text(), nullable=False),
            sa.Column("match_type", sa.String(20), nullable=False),
            sa.Column("state", sa.String(20), nullable=False),
            sa.Column("bid", sa.Float(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_keywords_campaign_id", "keywords", ["campaign_id"], unique=False)
        op.create_index("ix_keywords_ad_group_id", "keywords", ["ad_group_id"], unique=False)

    if "campaign_metrics_daily" not in existing:
        op.create_table(
            "campaign_metrics_daily",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("campaign_id", sa.String(255), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("impressions", sa.BigInteger(), nullable=True),
            sa.Column("clicks", sa.Integer(), nullable=True),
            sa.Column("spend", sa.Float(), nullable=True),
            sa.Column("sales", sa.Float(), nullable=True),
            sa.Column("orders", sa.Integer(), nullable=True),
            sa.Column("units_sold", sa.Integer(), nullable=True),
            sa.Column("kenp_royalties", sa.Float(), nullable=True),
            sa.Column("kenp_pages_read", sa.Integer(), nullable=True),
            sa.Column("synced_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("campaign_id", "date", name="uq_campaign_metrics_daily"),
        )
        op.create_index("ix_cmd_campaign_id", "campaign_metrics_daily", ["campaign_id"], unique=False)
        op.create_index("ix_cmd_date", "campaign_metrics_daily", ["date"], unique=False)

    if "pending_changes" not in existing:
        op.create_table(
            "pending_changes",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("change_type", sa.String(50), nullable=False),
            sa.Column("target_type", sa.String(20), nullable=False),
            sa.Column("target_id", sa.String(255), nullable=False),
            sa.Column("target_name", sa.String(512), nullable=True),
            sa.Column("current_value", sa.JSON(), nullable=False),
            sa.Column("proposed_value", sa.JSON(), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("executed_at", sa.DateTime(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_pending_changes_status", "pending_changes", ["status"], unique=False)
        op.create_index("ix_pending_changes_created_at", "pending_changes", ["created_at"], unique=False)
        op.create_index("ix_pending_changes_target", "pending_changes", ["target_type", "target_id"], unique=False)

    if "change_history" not in existing:
        op.create_table(
            "change_history",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("pending_change_id", sa.Uuid(), nullable=True),
            sa.Column("target_type", sa.String(20), nullable=False),
            sa.Column("target_id", sa.String(255), nullable=False),
            sa.Column("change_type", sa.String(50), nullable=False),
            sa.Column("old_value", sa.JSON(), nullable=True),
            sa.Column("new_value", sa.JSON(), nullable=False),
            sa.Column("executed_at", sa.DateTime(), nullable=True),
            sa.Column("success", sa.Boolean(), nullable=False),
            sa.Column("api_response", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["pending_change_id"], ["pending_changes.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_change_history_pending_change_id", "change_history", ["pending_change_id"], unique=False)
        op.create_index("ix_change_history_executed_at", "change_history", ["executed_at"], unique=False)


def downgrade() -> None:
    op.drop_table("change_history")
    op.drop_table("pending_changes")
    op.drop_table("campaign_metrics_daily")
    op.drop_table("keywords")
    op.drop_table("campaigns")
