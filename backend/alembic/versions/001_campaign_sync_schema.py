"""Campaign set hierarchy and per-campaign sync records.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    if "campaign_sets" in insp.get_table_names():
        return

    op.create_table(
        "campaign_sets",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("config", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="draft"),
        sa.Column("sync_status", sa.String(20), nullable=True, server_default="pending"),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_campaign_sets_user_id", "campaign_sets", ["user_id"], unique=False)
    op.create_index("ix_campaign_sets_status", "campaign_sets", ["status"], unique=False)

    op.create_table(
        "generated_campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_set_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("status", sa.String(20), nullable=True, server_default="draft"),
        sa.Column("campaign_data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("platform_data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("budget", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["campaign_set_id"], ["campaign_sets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generated_campaigns_campaign_set_id", "generated_campaigns", ["campaign_set_id"], unique=False)
    op.create_index("ix_generated_campaigns_user_id", "generated_campaigns", ["user_id"], unique=False)
    op.create_index("ix_generated_campaigns_platform", "generated_campaigns", ["platform"], unique=False)

    op.create_table(
        "ad_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("settings", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("platform_ad_group_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["campaign_id"], ["generated_campaigns.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ad_groups_campaign_id", "ad_groups", ["campaign_id"], unique=False)

    op.create_table(
        "ads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ad_group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("headline", sa.String(512), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_url", sa.String(512), nullable=True),
        sa.Column("final_url", sa.Text(), nullable=True),
        sa.Column("call_to_action", sa.String(100), nullable=True),
        sa.Column("assets", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("platform_ad_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["ad_group_id"], ["ad_groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ads_ad_group_id", "ads", ["ad_group_id"], unique=False)

    op.create_table(
        "keywords",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ad_group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("keyword", sa.String(512), nullable=False),
        sa.Column("match_type", sa.String(20), nullable=True, server_default="broad"),
        sa.Column("bid", sa.Float(), nullable=True),
        sa.Column("platform_keyword_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=True, server_default="active"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["ad_group_id"], ["ad_groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_keywords_ad_group_id", "keywords", ["ad_group_id"], unique=False)

    op.create_table(
        "sync_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("generated_campaign_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("platform_id", sa.String(255), nullable=True),
        sa.Column("sync_status", sa.String(20), nullable=True, server_default="pending"),
        sa.Column("error_log", sa.Text(), nullable=True),
        sa.Column("conflict_details", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("permanent_failure", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("last_retry_at", sa.DateTime(), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["generated_campaign_id"], ["generated_campaigns.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("generated_campaign_id"),
    )
    op.create_index("ix_sync_records_sync_status", "sync_records", ["sync_status"], unique=False)
    op.create_index("ix_sync_records_platform_id", "sync_records", ["platform_id"], unique=False)
    op.create_index("ix_sync_records_next_retry_at", "sync_records", ["next_retry_at"], unique=False)


def downgrade() -> None:
    op.drop_table("sync_records")
    op.drop_table("keywords")
    op.drop_table("ads")
    op.drop_table("ad_groups")
    op.drop_table("generated_campaigns")
    op.drop_table("campaign_sets")
