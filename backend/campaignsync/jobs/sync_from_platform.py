"""
Job: sync-from-platform — Pulls campaign status changes back from an ad platform.
"""

import logging
from typing import Awaitable, Callable

from campaignsync.adapters.base import PlatformPoller
from campaignsync.jobs.types import SyncFromPlatformJob
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.services.reconciler import Reconciler, SyncBackSummary

logger = logging.getLogger(__name__)

SyncFromPlatformHandler = Callable[[SyncFromPlatformJob], Awaitable[SyncBackSummary]]


def create_sync_from_platform_handler(
    repository: CampaignSetRepository,
    pollers: dict[str, PlatformPoller],
) -> SyncFromPlatformHandler:
    async def handle(job: SyncFromPlatformJob) -> SyncBackSummary:
        poller = pollers.get(job.platform)
        if poller is None:
            raise ValueError(f"Unsupported platform: {job.platform}")

        logger.info(f"Sync-back from {job.platform} for ad account {job.ad_account_id}")
        return await Reconciler(repository, poller).reconcile_account(job.ad_account_id)

    return handle
