"""
Campaign Set Schemas — In-memory campaign hierarchy used by the sync engine.
CampaignSet → Campaign → AdGroup → Ad / Keyword. Identity is always the local id;
platform ids are only present once an entity has been created remotely.
"""

import enum
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class CampaignSetStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SYNCING = "syncing"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ERROR = "error"


class SyncStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"
    CONFLICT = "conflict"


class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class EntityStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    REMOVED = "removed"


class KeywordMatchType(str, enum.Enum):
    BROAD = "broad"
    PHRASE = "phrase"
    EXACT = "exact"


# ══════════════════════════════════════════════════════════════════════
#  HIERARCHY
# ══════════════════════════════════════════════════════════════════════

class _Entity(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, from_attributes=True)


class BudgetInfo(_Entity):
    type: Literal["daily", "lifetime", "shared"]
    amount: float
    currency: str = "USD"


class AdAssets(_Entity):
    model_config = ConfigDict(extra="allow")

    images: list[dict] = Field(default_factory=list)
    videos: list[dict] = Field(default_factory=list)
    logos: list[dict] = Field(default_factory=list)
    custom_assets: list[dict] = Field(default_factory=list)


class Ad(_Entity):
    id: str
    ad_group_id: str
    order_index: int = 0
    headline: Optional[str] = None
    description: Optional[str] = None
    display_url: Optional[str] = None
    final_url: Optional[str] = None
    call_to_action: Optional[str] = None
    assets: Optional[AdAssets] = None
    platform_ad_id: Optional[str] = None
    status: EntityStatus = EntityStatus.ACTIVE


class Keyword(_Entity):
    id: str
    ad_group_id: str
    keyword: str
    match_type: KeywordMatchType = KeywordMatchType.BROAD
    bid: Optional[float] = None
    platform_keyword_id: Optional[str] = None
    status: EntityStatus = EntityStatus.ACTIVE


class AdGroup(_Entity):
    id: str
    campaign_id: str
    name: str
    order_index: int = 0
    settings: Optional[dict[str, Any]] = None
    platform_ad_group_id: Optional[str] = None
    status: EntityStatus = EntityStatus.ACTIVE
    ads: list[Ad] = Field(default_factory=list)
    keywords: list[Keyword] = Field(default_factory=list)


class Campaign(_Entity):
    id: str
    campaign_set_id: str
    name: str
    platform: str
    order_index: int = 0
    status: CampaignStatus = CampaignStatus.PENDING
    sync_status: SyncStatus = SyncStatus.PENDING
    campaign_data: Optional[dict[str, Any]] = None
    platform_campaign_id: Optional[str] = None
    platform_data: Optional[dict[str, Any]] = None
    budget: Optional[BudgetInfo] = None
    sync_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    ad_groups: list[AdGroup] = Field(default_factory=list)


class CampaignSet(_Entity):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)
    status: CampaignSetStatus = CampaignSetStatus.DRAFT
    sync_status: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    campaigns: list[Campaign] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════
#  SYNC RESULTS
# ══════════════════════════════════════════════════════════════════════

class SyncError(BaseModel):
    campaign_id: str = ""
    platform: str = ""
    code: str
    message: str


class CampaignSyncResult(BaseModel):
    campaign_id: str
    platform: str
    success: bool
    platform_campaign_id: Optional[str] = None
    error: Optional[str] = None


class CampaignSetSyncResult(BaseModel):
    success: bool
    set_id: str
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)
    campaigns: list[CampaignSyncResult] = Field(default_factory=list)


class PauseResult(BaseModel):
    set_id: str
    paused: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)


class ResumeResult(BaseModel):
    set_id: str
    resumed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)


class DiffSyncResult(BaseModel):
    success: bool
    created: int = 0
    updated: int = 0
    removed: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════
#  RECONCILIATION
# ══════════════════════════════════════════════════════════════════════

class PlatformBudget(BaseModel):
    type: Literal["daily", "lifetime"]
    amount: float


class PlatformCampaignStatus(BaseModel):
    """Snapshot of one campaign as the ad platform currently reports it."""
    platform_id: str
    status: Literal["active", "paused", "completed", "deleted", "error"]
    budget: Optional[PlatformBudget] = None
    last_modified: Optional[datetime] = None


class SyncedCampaign(BaseModel):
    """A locally-known campaign that has a platform id, with its last-synced baseline."""
    id: str
    platform_campaign_id: str
    local_status: str
    last_synced_at: Optional[datetime] = None
    local_updated_at: datetime
    platform: str


class ConflictDetails(BaseModel):
    field: str = "status"
    local_status: str
    platform_status: str
    local_updated_at: Optional[datetime] = None
    platform_modified_at: Optional[datetime] = None
    detected_at: datetime


class FailedCampaignForRetry(BaseModel):
    sync_record_id: str
    campaign_id: str
    platform: str
    retry_count: int = 0
    error_log: Optional[str] = None
    last_retry_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
