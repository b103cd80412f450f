"""
Reconciler — Pulls platform-side status changes back into the local model.

For every locally-synced campaign the platform's current status is compared with
the local one:
  same status                          → unchanged
  missing or deleted on the platform   → marked deleted
  differs, no local edit since sync    → platform value applied locally
  differs, local edited since sync     → conflict, stored for the user to resolve

The engine never picks a winner in a conflict. A campaign whose last_synced_at is
the epoch sentinel was never really synced, so the platform value always applies.
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field

from campaignsync.adapters.base import PlatformPoller
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import ConflictDetails, PlatformCampaignStatus, SyncedCampaign
from campaignsync.utils import EPOCH, error_message, utcnow

logger = logging.getLogger(__name__)

ReconcileOutcome = Literal["updated", "conflict", "deleted", "unchanged", "skipped", "error"]


class CampaignReconcileResult(BaseModel):
    campaign_id: str
    outcome: ReconcileOutcome
    local_status: Optional[str] = None
    platform_status: Optional[str] = None


class ReconcileErrorMessage(BaseModel):
    campaign_id: str
    message: str


class SyncBackSummary(BaseModel):
    updated: int = 0
    conflicts: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: list[ReconcileErrorMessage] = Field(default_factory=list)
    campaigns: list[CampaignReconcileResult] = Field(default_factory=list)


def has_local_changes(campaign: SyncedCampaign) -> bool:
    """True when the campaign was edited locally after its last successful sync."""
    if campaign.last_synced_at is None or campaign.last_synced_at == EPOCH:
        return False
    return campaign.local_updated_at > campaign.last_synced_at


class Reconciler:
    def __init__(self, repository: CampaignSetRepository, poller: PlatformPoller):
        self.repository = repository
        self.poller = poller

    async def reconcile_account(self, ad_account_id: str) -> SyncBackSummary:
        """Reconcile every synced campaign of an ad account against one platform listing."""
        summary = SyncBackSummary()
        campaigns = await self.repository.get_synced_campaigns_for_account(ad_account_id)
        if not campaigns:
            logger.info(f"No synced campaigns for ad account {ad_account_id}")
            return summary

        listing = await self.poller.list_campaign_statuses()
        by_platform_id = {status.platform_id: status for status in listing}

        for campaign in campaigns:
            await self._reconcile_one(campaign, by_platform_id.get(campaign.platform_campaign_id), summary)

        logger.info(f"Reconciled ad account {ad_account_id}: updated={summary.updated} conflicts={summary.conflicts} "
                    f"deleted={summary.deleted} unchanged={summary.unchanged} errors={summary.errors}")
        return summary

    async def reconcile_campaigns(self, campaigns: list[SyncedCampaign]) -> SyncBackSummary:
        """Poll each campaign individually. A failed poll is counted and the batch continues."""
        summary = SyncBackSummary()
        for campaign in campaigns:
            try:
                status = await self.poller.get_campaign_status(campaign.platform_campaign_id)
            except Exception as e:
                self._record_error(summary, campaign, e)
                continue
            await self._reconcile_one(campaign, status, summary)
        return summary

    async def _reconcile_one(
        self,
        campaign: SyncedCampaign,
        platform_status: Optional[PlatformCampaignStatus],
        summary: SyncBackSummary,
    ) -> None:
        if campaign.last_synced_at is None:
            summary.skipped += 1
            summary.campaigns.append(CampaignReconcileResult(campaign_id=campaign.id, outcome="skipped"))
            return

        try:
            if platform_status is None or platform_status.status == "deleted":
                await self.repository.mark_campaign_deleted_on_platform(campaign.id)
                summary.deleted += 1
                outcome = "deleted"
            elif platform_status.status == campaign.local_status:
                summary.unchanged += 1
                outcome = "unchanged"
            elif has_local_changes(campaign):
                await self.repository.mark_campaign_conflict(campaign.id, ConflictDetails(
                    field="status",
                    local_status=campaign.local_status,
                    platform_status=platform_status.status,
                    local_updated_at=campaign.local_updated_at,
                    platform_modified_at=platform_status.last_modified,
                    detected_at=utcnow(),
                ))
                summary.conflicts += 1
                outcome = "conflict"
                logger.warning(f"Status conflict on campaign {campaign.id}: local={campaign.local_status} "
                               f"platform={platform_status.status}")
            else:
                await self.repository.update_campaign_from_platform(campaign.id, platform_status)
                summary.updated += 1
                outcome = "updated"
        except Exception as e:
            self._record_error(summary, campaign, e)
            return

        summary.campaigns.append(CampaignReconcileResult(
            campaign_id=campaign.id,
            outcome=outcome,
            local_status=campaign.local_status,
            platform_status=platform_status.status if platform_status else None,
        ))

    @staticmethod
    def _record_error(summary: SyncBackSummary, campaign: SyncedCampaign, exc: Exception) -> None:
        message = error_message(exc)
        logger.error(f"Reconciliation failed for campaign {campaign.id}: {message}")
        summary.errors += 1
        summary.error_messages.append(ReconcileErrorMessage(campaign_id=campaign.id, message=message))
        summary.campaigns.append(CampaignReconcileResult(
            campaign_id=campaign.id, outcome="error", local_status=campaign.local_status,
        ))
