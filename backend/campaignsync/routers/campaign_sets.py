"""
Campaign Set Router — Sync, pause, resume, validate and diff whole campaign sets.
Entity-level failures come back inside the result body (HTTP 200); only a
missing set, invalid input or an unexpected crash maps to an HTTP error.
"""

import logging
import uuid as uuid_mod
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel

from campaignsync.dependencies import (
    get_breakers,
    get_diff_service,
    get_events,
    get_repository,
    get_sync_service,
)
from campaignsync.jobs.events import EventPublisher
from campaignsync.jobs.sync_campaign_set import create_sync_campaign_set_handler_with_events
from campaignsync.jobs.types import SyncCampaignSetJob
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import Campaign, CampaignSet, SyncError
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry
from campaignsync.services.diff_service import DiffSyncService
from campaignsync.services.sync_service import CampaignSetSyncService
from campaignsync.services.validation_service import SyncValidationService
from campaignsync.utils import parse_uuid, safe_error_detail

logger = logging.getLogger(__name__)
router = APIRouter()


# ── Helpers ───────────────────────────────────────────────────────────

async def _load_set(repository: CampaignSetRepository, set_id: str) -> CampaignSet:
    parse_uuid(set_id, "set_id")
    campaign_set = await repository.get_campaign_set_with_relations(set_id)
    if not campaign_set:
        raise HTTPException(status_code=404, detail=f"Campaign set with ID {set_id} not found")
    return campaign_set


def _raise_if_not_found(errors: list[SyncError]) -> None:
    for err in errors:
        if err.code == "CAMPAIGN_SET_NOT_FOUND":
            raise HTTPException(status_code=404, detail=err.message)


def _validation_failure(result) -> HTTPException:
    errors = SyncValidationService.collect_all_errors(result)
    return HTTPException(status_code=422, detail={
        "code": "VALIDATION_FAILED",
        "message": SyncValidationService.format_validation_summary(result),
        "errors": [e.model_dump() for e in errors],
    })


# ── Sync ──────────────────────────────────────────────────────────────

@router.post("/{set_id}/sync")
async def sync_campaign_set(
    set_id: str,
    background_tasks: BackgroundTasks,
    background: bool = Query(False, description="Run as a background job and stream progress events"),
    repository: CampaignSetRepository = Depends(get_repository),
    service: CampaignSetSyncService = Depends(get_sync_service),
    breakers: CircuitBreakerRegistry = Depends(get_breakers),
    events: EventPublisher = Depends(get_events),
):
    """
    Validate, then push the set to every platform it targets.
    With ?background=true returns a job_id immediately; progress is published
    on sync:{job_id} and the terminal event on sync:{job_id}:done.
    """
    campaign_set = await _load_set(repository, set_id)
    validation = SyncValidationService().validate_campaign_set(campaign_set, use_campaign_platform=True)
    if not validation.is_valid:
        raise _validation_failure(validation)

    if background:
        job_id = str(uuid_mod.uuid4())
        handler = create_sync_campaign_set_handler_with_events(service, breakers, events)
        platforms = sorted({c.platform for c in campaign_set.campaigns if c.status != "draft"})
        job = SyncCampaignSetJob(campaign_set_id=set_id, user_id=campaign_set.user_id, platforms=platforms)
        background_tasks.add_task(_run_background_sync, handler, job_id, job)
        return {"status": "queued", "job_id": job_id}

    try:
        result = await service.sync_campaign_set(set_id)
    except Exception as e:
        raise HTTPException(status_code=502, detail=safe_error_detail(e, "Campaign set sync failed. Please try again."))
    _raise_if_not_found(result.errors)
    return result.model_dump()


async def _run_background_sync(handler, job_id: str, job: SyncCampaignSetJob) -> None:
    try:
        await handler(job_id, job)
    except Exception as e:
        # already published as an error event; keep the worker alive
        logger.error(f"Background sync job {job_id} failed: {e}", exc_info=True)


@router.post("/{set_id}/pause")
async def pause_campaign_set(set_id: str, service: CampaignSetSyncService = Depends(get_sync_service)):
    parse_uuid(set_id, "set_id")
    result = await service.pause_campaign_set(set_id)
    _raise_if_not_found(result.errors)
    return result.model_dump()


@router.post("/{set_id}/resume")
async def resume_campaign_set(set_id: str, service: CampaignSetSyncService = Depends(get_sync_service)):
    parse_uuid(set_id, "set_id")
    result = await service.resume_campaign_set(set_id)
    _raise_if_not_found(result.errors)
    return result.model_dump()


# ── Validation ────────────────────────────────────────────────────────

@router.post("/{set_id}/validate")
async def validate_campaign_set(
    set_id: str,
    platform: Optional[str] = Query(None, description="Apply one platform's defaults to the whole set"),
    repository: CampaignSetRepository = Depends(get_repository),
):
    """Without ?platform each campaign is validated against its own platform's defaults."""
    campaign_set = await _load_set(repository, set_id)
    service = SyncValidationService()
    result = service.validate_campaign_set(campaign_set, platform=platform, use_campaign_platform=platform is None)
    return {
        **result.model_dump(),
        "message": service.format_validation_summary(result),
    }


# ── Diff ──────────────────────────────────────────────────────────────

class DiffRequest(BaseModel):
    campaigns: list[Campaign]


@router.post("/{set_id}/diff")
async def diff_campaign_set(
    set_id: str,
    payload: DiffRequest,
    apply: bool = Query(False, description="Apply the diff to the ad platforms"),
    repository: CampaignSetRepository = Depends(get_repository),
    service: DiffSyncService = Depends(get_diff_service),
):
    """Diff a regenerated campaign list against the persisted set, optionally applying it."""
    campaign_set = await _load_set(repository, set_id)
    diff = service.calculate_diff(campaign_set, payload.campaigns)
    response = {
        "diff": diff.model_dump(),
        "is_empty": diff.is_empty,
        "operations": len(service.plan(diff, campaign_set)),
    }
    if not apply:
        return response

    regenerated = campaign_set.model_copy(update={"campaigns": payload.campaigns})
    validation = SyncValidationService().validate_campaign_set(regenerated, use_campaign_platform=True)
    if not validation.is_valid:
        raise _validation_failure(validation)

    try:
        result = await service.apply_diff(set_id, diff)
    except Exception as e:
        raise HTTPException(status_code=502, detail=safe_error_detail(e, "Applying the diff failed. Please try again."))
    _raise_if_not_found(result.errors)
    response["result"] = result.model_dump()
    return response
