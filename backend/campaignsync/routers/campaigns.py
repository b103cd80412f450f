"""
Campaign Router — Single-campaign sync and conflict resolution.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from campaignsync.dependencies import get_repository, get_sync_service
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository, ConflictResolution
from campaignsync.services.sync_service import CampaignSetSyncService
from campaignsync.utils import parse_uuid

logger = logging.getLogger(__name__)
router = APIRouter()


class ResolveConflictRequest(BaseModel):
    resolution: ConflictResolution


@router.post("/{campaign_id}/sync")
async def sync_campaign(campaign_id: str, service: CampaignSetSyncService = Depends(get_sync_service)):
    parse_uuid(campaign_id, "campaign_id")
    result = await service.sync_campaign(campaign_id)
    if not result.success and result.error == "Campaign not found":
        raise HTTPException(status_code=404, detail=f"Campaign {campaign_id} not found")
    return result.model_dump()


@router.post("/{campaign_id}/resolve-conflict")
async def resolve_conflict(
    campaign_id: str,
    payload: ResolveConflictRequest,
    repository: CampaignSetRepository = Depends(get_repository),
):
    """
    keep_platform applies the platform's status locally; keep_local re-queues the
    campaign so the next outbound sync pushes the local value.
    """
    parse_uuid(campaign_id, "campaign_id")
    resolved = await repository.resolve_campaign_conflict(campaign_id, payload.resolution)
    if not resolved:
        raise HTTPException(status_code=409, detail=f"Campaign {campaign_id} has no unresolved conflict")
    return {"status": "resolved", "campaign_id": campaign_id, "resolution": payload.resolution}
