"""
Campaign Set Sync Service — Pushes whole campaign sets to their ad platforms.

sync_campaign_set() walks every non-draft campaign and its tree
(ad groups → ads / keywords), creating entities that have no platform id yet and
updating the ones that do. Platform ids are written back the moment a create
succeeds, so a retry after a partial failure never duplicates a parent.

All batch operations are best-effort: one campaign failing is recorded and the
loop moves on. Every adapter call is guarded by the platform's circuit breaker
and a per-call timeout; a refused call counts as skipped, not failed.
"""

import logging
from typing import Optional

from campaignsync.adapters.base import PlatformAdapter
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import (
    Ad,
    AdGroup,
    Campaign,
    CampaignSetSyncResult,
    CampaignSyncResult,
    Keyword,
    PauseResult,
    ResumeResult,
    SyncError,
)
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from campaignsync.services.platform_calls import GuardedCaller
from campaignsync.utils import error_message

logger = logging.getLogger(__name__)


class ChildSyncError(Exception):
    """A child entity failed; the message names the entity chain that broke."""


def _not_found(set_id: str) -> SyncError:
    return SyncError(code="CAMPAIGN_SET_NOT_FOUND", message=f"Campaign set with ID {set_id} not found")


def _no_adapter(campaign: Campaign) -> SyncError:
    return SyncError(
        campaign_id=campaign.id,
        platform=campaign.platform,
        code="NO_ADAPTER_FOR_PLATFORM",
        message=f"No adapter available for platform: {campaign.platform}",
    )


class CampaignSetSyncService:
    def __init__(
        self,
        adapters: dict[str, PlatformAdapter],
        repository: CampaignSetRepository,
        breakers: Optional[CircuitBreakerRegistry] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.adapters = adapters
        self.repository = repository
        self.caller = GuardedCaller(breakers or CircuitBreakerRegistry(), timeout_seconds)

    # ══════════════════════════════════════════════════════════════════
    #  SYNC
    # ══════════════════════════════════════════════════════════════════

    async def sync_campaign_set(self, set_id: str) -> CampaignSetSyncResult:
        campaign_set = await self.repository.get_campaign_set_with_relations(set_id)
        if campaign_set is None:
            return CampaignSetSyncResult(success=False, set_id=set_id, errors=[_not_found(set_id)])

        await self.repository.update_campaign_set_status(set_id, "syncing", "syncing")

        result = CampaignSetSyncResult(success=False, set_id=set_id)
        for campaign in campaign_set.campaigns:
            if campaign.status == "draft":
                result.skipped += 1
                continue

            adapter = self.adapters.get(campaign.platform)
            if adapter is None:
                result.skipped += 1
                result.errors.append(_no_adapter(campaign))
                continue

            try:
                outcome = await self._sync_single_campaign(campaign, adapter)
            except CircuitOpenError:
                logger.warning(f"Skipping campaign {campaign.id}: circuit open for {campaign.platform}")
                result.skipped += 1
                continue
            except Exception as e:
                message = error_message(e)
                logger.error(f"Campaign {campaign.id} sync raised: {message}", exc_info=True)
                outcome = CampaignSyncResult(
                    campaign_id=campaign.id, platform=campaign.platform, success=False, error=message,
                )
                result.errors.append(SyncError(
                    campaign_id=campaign.id, platform=campaign.platform, code="SYNC_EXCEPTION", message=message,
                ))
            else:
                if not outcome.success:
                    result.errors.append(SyncError(
                        campaign_id=campaign.id,
                        platform=campaign.platform,
                        code="SYNC_FAILED",
                        message=outcome.error or "Unknown error",
                    ))

            result.campaigns.append(outcome)
            if outcome.success:
                result.synced += 1
                await self.repository.update_campaign_sync_status(campaign.id, "synced")
            else:
                result.failed += 1
                await self.repository.update_campaign_sync_status(campaign.id, "failed", outcome.error)

        result.success = result.failed == 0
        if not result.success:
            await self.repository.update_campaign_set_status(set_id, "error", "failed")
        elif result.synced > 0 or result.skipped == 0:
            await self.repository.update_campaign_set_status(set_id, "active", "synced")
        else:
            # nothing reached a platform; stay queued for the next sync
            await self.repository.update_campaign_set_status(set_id, "pending", "pending")

        logger.info(f"Campaign set {set_id} sync finished: synced={result.synced} "
                    f"failed={result.failed} skipped={result.skipped}")
        return result

    async def sync_campaign(self, campaign_id: str) -> CampaignSyncResult:
        """Sync one campaign by id (used by retries). Never raises for adapter failures."""
        campaign = await self.repository.get_campaign_by_id(campaign_id)
        if campaign is None:
            return CampaignSyncResult(campaign_id=campaign_id, platform="unknown", success=False,
                                      error="Campaign not found")

        adapter = self.adapters.get(campaign.platform)
        if adapter is None:
            return CampaignSyncResult(campaign_id=campaign_id, platform=campaign.platform, success=False,
                                      error=f"No adapter available for platform: {campaign.platform}")

        try:
            outcome = await self._sync_single_campaign(campaign, adapter)
        except CircuitOpenError as e:
            return CampaignSyncResult(campaign_id=campaign_id, platform=campaign.platform, success=False,
                                      error=str(e))
        except Exception as e:
            outcome = CampaignSyncResult(campaign_id=campaign_id, platform=campaign.platform, success=False,
                                         error=error_message(e))

        if outcome.success:
            await self.repository.update_campaign_sync_status(campaign_id, "synced")
        else:
            await self.repository.update_campaign_sync_status(campaign_id, "failed", outcome.error)
        return outcome

    # ══════════════════════════════════════════════════════════════════
    #  PAUSE / RESUME
    # ══════════════════════════════════════════════════════════════════

    async def pause_campaign_set(self, set_id: str) -> PauseResult:
        campaign_set = await self.repository.get_campaign_set_with_relations(set_id)
        if campaign_set is None:
            return PauseResult(set_id=set_id, errors=[_not_found(set_id)])

        result = PauseResult(set_id=set_id)
        for campaign in campaign_set.campaigns:
            outcome = await self._toggle(campaign, "pause", result.errors)
            if outcome is None:
                continue
            if outcome == "skipped":
                result.skipped += 1
            elif outcome:
                result.paused += 1
            else:
                result.failed += 1

        if result.paused and not result.failed:
            await self.repository.update_campaign_set_status(set_id, "paused", campaign_set.sync_status)
        logger.info(f"Campaign set {set_id} pause: paused={result.paused} failed={result.failed} "
                    f"skipped={result.skipped}")
        return result

    async def resume_campaign_set(self, set_id: str) -> ResumeResult:
        campaign_set = await self.repository.get_campaign_set_with_relations(set_id)
        if campaign_set is None:
            return ResumeResult(set_id=set_id, errors=[_not_found(set_id)])

        result = ResumeResult(set_id=set_id)
        for campaign in campaign_set.campaigns:
            outcome = await self._toggle(campaign, "resume", result.errors)
            if outcome is None:
                continue
            if outcome == "skipped":
                result.skipped += 1
            elif outcome:
                result.resumed += 1
            else:
                result.failed += 1

        if result.resumed and not result.failed:
            await self.repository.update_campaign_set_status(set_id, "active", campaign_set.sync_status)
        logger.info(f"Campaign set {set_id} resume: resumed={result.resumed} failed={result.failed} "
                    f"skipped={result.skipped}")
        return result

    async def _toggle(self, campaign: Campaign, action: str, errors: list[SyncError]):
        """
        Pause or resume one campaign on its platform.
        Returns None for never-synced campaigns, "skipped" when the breaker refuses,
        otherwise True/False for success.
        """
        if not campaign.platform_campaign_id:
            return None

        adapter = self.adapters.get(campaign.platform)
        if adapter is None:
            errors.append(_no_adapter(campaign))
            return False

        fn = adapter.pause_campaign if action == "pause" else adapter.resume_campaign
        try:
            await self.caller.call(campaign.platform, fn, campaign.platform_campaign_id)
            return True
        except CircuitOpenError:
            return "skipped"
        except Exception as e:
            errors.append(SyncError(
                campaign_id=campaign.id,
                platform=campaign.platform,
                code="PAUSE_FAILED" if action == "pause" else "RESUME_FAILED",
                message=error_message(e),
            ))
            return False

    # ══════════════════════════════════════════════════════════════════
    #  TREE WALK
    # ══════════════════════════════════════════════════════════════════

    async def _sync_single_campaign(self, campaign: Campaign, adapter: PlatformAdapter) -> CampaignSyncResult:
        platform = campaign.platform

        if campaign.platform_campaign_id:
            result = await self.caller.call(platform, adapter.update_campaign, campaign, campaign.platform_campaign_id)
            platform_campaign_id = campaign.platform_campaign_id
        else:
            result = await self.caller.call(platform, adapter.create_campaign, campaign)
            platform_campaign_id = result.platform_id
            # persist before children so a child failure never leads to a duplicate parent on retry
            if result.success and platform_campaign_id:
                await self.repository.update_campaign_platform_id(campaign.id, platform_campaign_id)

        if not result.success:
            return CampaignSyncResult(campaign_id=campaign.id, platform=platform, success=False, error=result.error)

        try:
            for ad_group in campaign.ad_groups:
                await self._sync_ad_group(ad_group, platform_campaign_id, adapter, platform)
        except ChildSyncError as e:
            return CampaignSyncResult(
                campaign_id=campaign.id,
                platform=platform,
                success=False,
                platform_campaign_id=platform_campaign_id,
                error=str(e),
            )

        logger.info(f"Campaign {campaign.id} synced to {platform} as {platform_campaign_id}")
        return CampaignSyncResult(
            campaign_id=campaign.id, platform=platform, success=True, platform_campaign_id=platform_campaign_id,
        )

    async def _sync_ad_group(self, ad_group: AdGroup, platform_campaign_id: str, adapter: PlatformAdapter,
                             platform: str) -> None:
        if ad_group.platform_ad_group_id:
            result = await self.caller.call(platform, adapter.update_ad_group, ad_group, ad_group.platform_ad_group_id)
            platform_ad_group_id = result.platform_id or ad_group.platform_ad_group_id
        else:
            result = await self.caller.call(platform, adapter.create_ad_group, ad_group, platform_campaign_id)
            platform_ad_group_id = result.platform_id
        if not result.success:
            raise ChildSyncError(f"Failed to sync ad group {ad_group.id}: {result.error}")
        if platform_ad_group_id and platform_ad_group_id != ad_group.platform_ad_group_id:
            await self.repository.update_ad_group_platform_id(ad_group.id, platform_ad_group_id)

        for ad in ad_group.ads:
            await self._sync_ad(ad, platform_ad_group_id, adapter, platform)
        for keyword in ad_group.keywords:
            await self._sync_keyword(keyword, platform_ad_group_id, adapter, platform)

    async def _sync_ad(self, ad: Ad, platform_ad_group_id: str, adapter: PlatformAdapter, platform: str) -> None:
        if ad.platform_ad_id:
            result = await self.caller.call(platform, adapter.update_ad, ad, ad.platform_ad_id)
        else:
            result = await self.caller.call(platform, adapter.create_ad, ad, platform_ad_group_id)
        if not result.success:
            raise ChildSyncError(f"Failed to sync ad {ad.id}: {result.error}")
        if result.platform_id and result.platform_id != ad.platform_ad_id:
            await self.repository.update_ad_platform_id(ad.id, result.platform_id)

    async def _sync_keyword(self, keyword: Keyword, platform_ad_group_id: str, adapter: PlatformAdapter,
                            platform: str) -> None:
        if keyword.platform_keyword_id:
            result = await self.caller.call(platform, adapter.update_keyword, keyword, keyword.platform_keyword_id)
        else:
            result = await self.caller.call(platform, adapter.create_keyword, keyword, platform_ad_group_id)
        if not result.success:
            raise ChildSyncError(f"Failed to sync keyword {keyword.id}: {result.error}")
        if result.platform_id and result.platform_id != keyword.platform_keyword_id:
            await self.repository.update_keyword_platform_id(keyword.id, result.platform_id)
