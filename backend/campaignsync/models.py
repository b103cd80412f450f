"""
Campaign Sync — Database Models
Campaign set hierarchy (set → campaigns → ad groups → ads / keywords) plus the
per-campaign sync record that tracks platform IDs, retries and conflicts.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, DateTime,
    JSON, ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID
from campaignsync.database import Base


def _utcnow() -> datetime:
    """Naive UTC now, matching DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN SETS
# ══════════════════════════════════════════════════════════════════════

class CampaignSet(Base):
    """User-authored campaign hierarchy plus the config snapshot it was generated from."""
    __tablename__ = "campaign_sets"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    sync_status: Mapped[str] = mapped_column(String(20), default="pending")
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    campaigns: Mapped[list["GeneratedCampaign"]] = relationship(
        "GeneratedCampaign", back_populates="campaign_set",
        cascade="all, delete-orphan", order_by="GeneratedCampaign.order_index",
    )

    __table_args__ = (
        Index("ix_campaign_sets_user_id", "user_id"),
        Index("ix_campaign_sets_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  GENERATED CAMPAIGNS
# ══════════════════════════════════════════════════════════════════════

class GeneratedCampaign(Base):
    """A campaign generated from a campaign set, targeting one platform."""
    __tablename__ = "generated_campaigns"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_set_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("campaign_sets.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)  # open string, not an enum
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    campaign_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    platform_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    budget: Mapped[dict] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    campaign_set: Mapped["CampaignSet"] = relationship("CampaignSet", back_populates="campaigns")
    ad_groups: Mapped[list["AdGroup"]] = relationship(
        "AdGroup", back_populates="campaign",
        cascade="all, delete-orphan", order_by="AdGroup.order_index",
    )
    sync_record: Mapped["SyncRecord"] = relationship(
        "SyncRecord", back_populates="campaign", uselist=False, cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_generated_campaigns_campaign_set_id", "campaign_set_id"),
        Index("ix_generated_campaigns_user_id", "user_id"),
        Index("ix_generated_campaigns_platform", "platform"),
    )


# ══════════════════════════════════════════════════════════════════════
#  AD GROUPS / ADS / KEYWORDS
# ══════════════════════════════════════════════════════════════════════

class AdGroup(Base):
    __tablename__ = "ad_groups"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("generated_campaigns.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    settings: Mapped[dict] = mapped_column(JSON, nullable=True)  # targeting / bidding bag
    platform_ad_group_id: Mapped[str] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    campaign: Mapped["GeneratedCampaign"] = relationship("GeneratedCampaign", back_populates="ad_groups")
    ads: Mapped[list["Ad"]] = relationship("Ad", back_populates="ad_group", cascade="all, delete-orphan", order_by="Ad.order_index")
    keywords: Mapped[list["Keyword"]] = relationship("Keyword", back_populates="ad_group", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_ad_groups_campaign_id", "campaign_id"),
    )


class Ad(Base):
    __tablename__ = "ads"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ad_group_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    headline: Mapped[str] = mapped_column(String(512), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    display_url: Mapped[str] = mapped_column(String(512), nullable=True)
    final_url: Mapped[str] = mapped_column(Text, nullable=True)
    call_to_action: Mapped[str] = mapped_column(String(100), nullable=True)
    assets: Mapped[dict] = mapped_column(JSON, nullable=True)
    platform_ad_id: Mapped[str] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    ad_group: Mapped["AdGroup"] = relationship("AdGroup", back_populates="ads")

    __table_args__ = (
        Index("ix_ads_ad_group_id", "ad_group_id"),
    )


class Keyword(Base):
    __tablename__ = "keywords"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ad_group_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("ad_groups.id", ondelete="CASCADE"), nullable=False)
    keyword: Mapped[str] = mapped_column(String(512), nullable=False)
    match_type: Mapped[str] = mapped_column(String(20), default="broad")
    bid: Mapped[float] = mapped_column(Float, nullable=True)
    platform_keyword_id: Mapped[str] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    ad_group: Mapped["AdGroup"] = relationship("AdGroup", back_populates="keywords")

    __table_args__ = (
        Index("ix_keywords_ad_group_id", "ad_group_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  SYNC RECORDS: platform ID, sync state, retry queue, conflicts
# ══════════════════════════════════════════════════════════════════════

class SyncRecord(Base):
    """One row per generated campaign once it has been touched by a sync."""
    __tablename__ = "sync_records"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    generated_campaign_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("generated_campaigns.id", ondelete="CASCADE"), nullable=False, unique=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    platform_id: Mapped[str] = mapped_column(String(255), nullable=True)
    sync_status: Mapped[str] = mapped_column(String(20), default="pending")
    error_log: Mapped[str] = mapped_column(Text, nullable=True)
    conflict_details: Mapped[dict] = mapped_column(JSON, nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    permanent_failure: Mapped[bool] = mapped_column(Boolean, default=False)
    last_retry_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    next_retry_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    campaign: Mapped["GeneratedCampaign"] = relationship("GeneratedCampaign", back_populates="sync_record")

    __table_args__ = (
        Index("ix_sync_records_sync_status", "sync_status"),
        Index("ix_sync_records_platform_id", "platform_id"),
        Index("ix_sync_records_next_retry_at", "next_retry_at"),
    )
