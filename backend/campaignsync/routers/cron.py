"""
Cron / Scheduled Jobs — Endpoints for Upstash QStash or external cron.

These endpoints are called on a schedule. They verify CRON_SECRET and run the
retry-failed-syncs and sync-from-platform jobs.

Set CRON_SECRET in the environment. The scheduler sends:
  X-Cron-Secret: <CRON_SECRET>   (or Authorization: Bearer <CRON_SECRET>)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from campaignsync.auth import require_cron_secret
from campaignsync.dependencies import get_breakers, get_pollers, get_repository
from campaignsync.jobs.retry_failed_syncs import create_retry_failed_syncs_handler
from campaignsync.jobs.sync_from_platform import create_sync_from_platform_handler
from campaignsync.jobs.types import RetryFailedSyncsJob, SyncFromPlatformJob
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.post("/retry-failed-syncs")
async def cron_retry_failed_syncs(
    job: RetryFailedSyncsJob,
    _: None = Depends(require_cron_secret),
    repository: CampaignSetRepository = Depends(get_repository),
    breakers: CircuitBreakerRegistry = Depends(get_breakers),
):
    """
    Re-queue failed campaign syncs for a user. Call from QStash:
    POST https://your-app/api/cron/retry-failed-syncs
    Header: X-Cron-Secret: <CRON_SECRET>
    Body: {"user_id": "...", "max_retries": 3}
    """
    try:
        result = await create_retry_failed_syncs_handler(repository, breakers)(job)
        logger.info(f"Cron retry-failed-syncs completed: {result}")
        return {"status": "ok", "result": result.model_dump()}
    except Exception as e:
        logger.exception("Cron retry-failed-syncs failed")
        raise HTTPException(500, str(e))


@router.post("/sync-from-platform")
async def cron_sync_from_platform(
    job: SyncFromPlatformJob,
    _: None = Depends(require_cron_secret),
    repository: CampaignSetRepository = Depends(get_repository),
    pollers: dict = Depends(get_pollers),
):
    """
    Pull platform-side status changes for an ad account. Call from QStash:
    POST https://your-app/api/cron/sync-from-platform
    Header: X-Cron-Secret: <CRON_SECRET>
    Body: {"ad_account_id": "...", "user_id": "...", "platform": "reddit"}
    """
    try:
        summary = await create_sync_from_platform_handler(repository, pollers)(job)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        logger.exception("Cron sync-from-platform failed")
        raise HTTPException(500, str(e))
    logger.info(f"Cron sync-from-platform completed: updated={summary.updated} conflicts={summary.conflicts}")
    return {"status": "ok", "result": summary.model_dump()}
