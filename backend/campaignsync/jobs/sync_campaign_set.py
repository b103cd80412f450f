"""
Job: sync-campaign-set — Runs a full campaign set sync in the background.

Refuses to start while the circuit breaker of every targeted platform is open;
platforms that are down while others are up are skipped by the sync itself. Per-call
breaker accounting happens inside the sync service, so the handler only checks
the state without spending a half-open trial call.
"""

import logging
from typing import Awaitable, Callable

from campaignsync.jobs.events import EventPublisher, SyncProgressEvent
from campaignsync.jobs.types import SyncCampaignSetJob, SyncCampaignSetJobResult
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from campaignsync.services.sync_service import CampaignSetSyncService
from campaignsync.utils import error_message

logger = logging.getLogger(__name__)

SyncHandler = Callable[[SyncCampaignSetJob], Awaitable[SyncCampaignSetJobResult]]
SyncHandlerWithEvents = Callable[[str, SyncCampaignSetJob], Awaitable[SyncCampaignSetJobResult]]


def create_sync_campaign_set_handler(
    sync_service: CampaignSetSyncService,
    breakers: CircuitBreakerRegistry,
) -> SyncHandler:
    async def handle(job: SyncCampaignSetJob) -> SyncCampaignSetJobResult:
        platforms = job.platforms if job.platforms is not None else [job.platform]
        if platforms and all(breakers.get(p).is_open() for p in platforms):
            logger.warning(f"Not syncing campaign set {job.campaign_set_id}: circuit open for {', '.join(platforms)}")
            raise CircuitOpenError(platforms[0])

        logger.info(f"Syncing campaign set {job.campaign_set_id} for user {job.user_id} on {', '.join(platforms)}")
        result = await sync_service.sync_campaign_set(job.campaign_set_id)
        return SyncCampaignSetJobResult(
            synced=result.synced,
            failed=result.failed,
            skipped=result.skipped,
            errors=result.errors,
        )

    return handle


def create_sync_campaign_set_handler_with_events(
    sync_service: CampaignSetSyncService,
    breakers: CircuitBreakerRegistry,
    events: EventPublisher,
) -> SyncHandlerWithEvents:
    """Same as the plain handler, plus progress / completed / error events keyed by job id."""
    inner = create_sync_campaign_set_handler(sync_service, breakers)

    async def emit(event: SyncProgressEvent) -> None:
        # a broken event channel must not fail the sync itself
        try:
            await events.emit(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event.type} event for job {event.job_id}: {error_message(e)}")

    async def handle(job_id: str, job: SyncCampaignSetJob) -> SyncCampaignSetJobResult:
        await emit(SyncProgressEvent(
            type="progress",
            job_id=job_id,
            campaign_set_id=job.campaign_set_id,
            data={"message": "Starting campaign set sync"},
        ))
        try:
            result = await inner(job)
        except Exception as e:
            await emit(SyncProgressEvent(
                type="error",
                job_id=job_id,
                campaign_set_id=job.campaign_set_id,
                data={"error": error_message(e)},
            ))
            raise

        await emit(SyncProgressEvent(
            type="completed",
            job_id=job_id,
            campaign_set_id=job.campaign_set_id,
            data={"synced": result.synced, "failed": result.failed, "total": result.synced + result.failed},
        ))
        return result

    return handle
