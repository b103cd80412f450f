"""
Job payloads and results for the background sync jobs.
"""

from typing import Optional

from pydantic import BaseModel, Field

from campaignsync.schemas import SyncError

SYNC_CAMPAIGN_SET_JOB = "sync-campaign-set"
SYNC_FROM_PLATFORM_JOB = "sync-from-platform"
RETRY_FAILED_SYNCS_JOB = "retry-failed-syncs"


class SyncCampaignSetJob(BaseModel):
    campaign_set_id: str
    user_id: str
    platform: str = "reddit"
    # every platform the set targets; falls back to `platform` when unset
    platforms: Optional[list[str]] = None
    ad_account_id: Optional[str] = None
    funding_instrument_id: Optional[str] = None


class SyncCampaignSetJobResult(BaseModel):
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)


class SyncFromPlatformJob(BaseModel):
    ad_account_id: str
    user_id: str
    platform: str = "reddit"


class RetryFailedSyncsJob(BaseModel):
    user_id: str
    max_retries: Optional[int] = None


class RetryFailedSyncsResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    permanent_failures: int = 0
