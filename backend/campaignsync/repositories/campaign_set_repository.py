"""
Campaign Set Repository — Persistence gateway for the sync engine.

CampaignSetRepository is the abstract seam the services depend on;
SqlAlchemyCampaignSetRepository implements it on the async session factory,
one short transaction per call so a platform id written mid-batch is durable
even if a later entity fails.
"""

import abc
import logging
import uuid
from datetime import timedelta
from typing import Literal, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from campaignsync import models
from campaignsync.schemas import (
    Ad,
    AdGroup,
    Campaign,
    CampaignSet,
    ConflictDetails,
    FailedCampaignForRetry,
    Keyword,
    PlatformCampaignStatus,
    SyncedCampaign,
)
from campaignsync.services.backoff import BackoffConfig, calculate_backoff_delay
from campaignsync.utils import EPOCH, utcnow

logger = logging.getLogger(__name__)

ConflictResolution = Literal["keep_local", "keep_platform"]
EntityKindName = Literal["campaign", "ad_group", "ad", "keyword"]
GeneratedEntity = Union[Campaign, AdGroup, Ad, Keyword]

DELETED_ON_PLATFORM_MESSAGE = "Campaign was deleted on the ad platform"

# platform status → local campaign status
_LOCAL_STATUS_FROM_PLATFORM = {
    "active": "active",
    "paused": "paused",
    "completed": "completed",
    "deleted": "error",
    "error": "error",
}


class CampaignSetRepository(abc.ABC):

    # ── Hierarchy ──
    @abc.abstractmethod
    async def get_campaign_set_with_relations(self, set_id: str) -> Optional[CampaignSet]: ...

    @abc.abstractmethod
    async def get_campaign_by_id(self, campaign_id: str) -> Optional[Campaign]: ...

    @abc.abstractmethod
    async def update_campaign_set_status(self, set_id: str, status: str, sync_status: str) -> None: ...

    @abc.abstractmethod
    async def update_campaign_sync_status(
        self, campaign_id: str, sync_status: str, error: Optional[str] = None,
    ) -> None: ...

    # ── Regenerated hierarchy ──
    @abc.abstractmethod
    async def save_generated_entities(self, set_id: str, entities: list[GeneratedEntity]) -> None:
        """Insert or update local rows, parents first. Never touches platform ids or sync state."""

    @abc.abstractmethod
    async def delete_entity(self, kind: EntityKindName, entity_id: str) -> None: ...

    # ── Platform id writeback ──
    @abc.abstractmethod
    async def update_campaign_platform_id(self, campaign_id: str, platform_id: str) -> None: ...

    @abc.abstractmethod
    async def update_ad_group_platform_id(self, ad_group_id: str, platform_id: str) -> None: ...

    @abc.abstractmethod
    async def update_ad_platform_id(self, ad_id: str, platform_id: str) -> None: ...

    @abc.abstractmethod
    async def update_keyword_platform_id(self, keyword_id: str, platform_id: str) -> None: ...

    # ── Reconciliation ──
    @abc.abstractmethod
    async def get_synced_campaigns_for_account(self, ad_account_id: str) -> list[SyncedCampaign]: ...

    @abc.abstractmethod
    async def mark_campaign_deleted_on_platform(self, campaign_id: str) -> None: ...

    @abc.abstractmethod
    async def mark_campaign_conflict(self, campaign_id: str, details: ConflictDetails) -> None: ...

    @abc.abstractmethod
    async def update_campaign_from_platform(self, campaign_id: str, platform_status: PlatformCampaignStatus) -> None: ...

    @abc.abstractmethod
    async def resolve_campaign_conflict(self, campaign_id: str, resolution: ConflictResolution) -> bool: ...

    # ── Retry queue ──
    @abc.abstractmethod
    async def get_failed_campaigns_for_retry(self, user_id: str, max_retries: int) -> list[FailedCampaignForRetry]: ...

    @abc.abstractmethod
    async def increment_retry_count(self, campaign_id: str) -> int: ...

    @abc.abstractmethod
    async def mark_permanent_failure(self, campaign_id: str, reason: Optional[str] = None) -> None: ...

    @abc.abstractmethod
    async def reset_sync_for_retry(self, campaign_id: str) -> None: ...


# ══════════════════════════════════════════════════════════════════════
#  ORM → DOMAIN
# ══════════════════════════════════════════════════════════════════════

def _campaign_to_dict(row: models.GeneratedCampaign) -> dict:
    record = row.sync_record
    return {
        "id": str(row.id),
        "campaign_set_id": str(row.campaign_set_id),
        "name": row.name,
        "platform": row.platform,
        "order_index": row.order_index or 0,
        "status": row.status,
        "sync_status": record.sync_status if record else "pending",
        "campaign_data": row.campaign_data,
        "platform_campaign_id": record.platform_id if record else None,
        "platform_data": row.platform_data,
        "budget": row.budget,
        "sync_error": record.error_log if record else None,
        "last_synced_at": record.last_synced_at if record else None,
        "ad_groups": [
            {
                "id": str(ag.id),
                "campaign_id": str(ag.campaign_id),
                "name": ag.name,
                "order_index": ag.order_index or 0,
                "settings": ag.settings,
                "platform_ad_group_id": ag.platform_ad_group_id,
                "status": ag.status,
                "ads": [
                    {
                        "id": str(ad.id),
                        "ad_group_id": str(ad.ad_group_id),
                        "order_index": ad.order_index or 0,
                        "headline": ad.headline,
                        "description": ad.description,
                        "display_url": ad.display_url,
                        "final_url": ad.final_url,
                        "call_to_action": ad.call_to_action,
                        "assets": ad.assets,
                        "platform_ad_id": ad.platform_ad_id,
                        "status": ad.status,
                    }
                    for ad in ag.ads
                ],
                "keywords": [
                    {
                        "id": str(kw.id),
                        "ad_group_id": str(kw.ad_group_id),
                        "keyword": kw.keyword,
                        "match_type": kw.match_type,
                        "bid": kw.bid,
                        "platform_keyword_id": kw.platform_keyword_id,
                        "status": kw.status,
                    }
                    for kw in ag.keywords
                ],
            }
            for ag in row.ad_groups
        ],
    }


def to_campaign_set(row: models.CampaignSet) -> CampaignSet:
    return CampaignSet.model_validate({
        "id": str(row.id),
        "user_id": str(row.user_id),
        "name": row.name,
        "description": row.description,
        "config": row.config or {},
        "status": row.status,
        "sync_status": row.sync_status,
        "last_synced_at": row.last_synced_at,
        "campaigns": [_campaign_to_dict(c) for c in row.campaigns],
    })


# ══════════════════════════════════════════════════════════════════════
#  SQLALCHEMY IMPLEMENTATION
# ══════════════════════════════════════════════════════════════════════

class SqlAlchemyCampaignSetRepository(CampaignSetRepository):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        backoff_config: Optional[BackoffConfig] = None,
    ):
        self.session_factory = session_factory
        self.backoff_config = backoff_config

    async def _get_campaign(self, db: AsyncSession, campaign_id: str) -> Optional[models.GeneratedCampaign]:
        result = await db.execute(
            select(models.GeneratedCampaign)
            .options(selectinload(models.GeneratedCampaign.sync_record))
            .where(models.GeneratedCampaign.id == uuid.UUID(campaign_id))
        )
        return result.scalar_one_or_none()

    async def _get_or_create_record(self, db: AsyncSession, campaign: models.GeneratedCampaign) -> models.SyncRecord:
        if campaign.sync_record is None:
            record = models.SyncRecord(generated_campaign_id=campaign.id, platform=campaign.platform)
            db.add(record)
            campaign.sync_record = record
        return campaign.sync_record

    async def _get_record(self, db: AsyncSession, campaign_id: str) -> Optional[models.SyncRecord]:
        result = await db.execute(
            select(models.SyncRecord).where(models.SyncRecord.generated_campaign_id == uuid.UUID(campaign_id))
        )
        return result.scalar_one_or_none()

    # ── Hierarchy ─────────────────────────────────────────────────────

    async def get_campaign_set_with_relations(self, set_id: str) -> Optional[CampaignSet]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(models.CampaignSet)
                .options(
                    selectinload(models.CampaignSet.campaigns).selectinload(models.GeneratedCampaign.sync_record),
                    selectinload(models.CampaignSet.campaigns)
                    .selectinload(models.GeneratedCampaign.ad_groups)
                    .selectinload(models.AdGroup.ads),
                    selectinload(models.CampaignSet.campaigns)
                    .selectinload(models.GeneratedCampaign.ad_groups)
                    .selectinload(models.AdGroup.keywords),
                )
                .where(models.CampaignSet.id == uuid.UUID(set_id))
            )
            row = result.scalar_one_or_none()
            return to_campaign_set(row) if row else None

    async def get_campaign_by_id(self, campaign_id: str) -> Optional[Campaign]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(models.GeneratedCampaign)
                .options(
                    selectinload(models.GeneratedCampaign.sync_record),
                    selectinload(models.GeneratedCampaign.ad_groups).selectinload(models.AdGroup.ads),
                    selectinload(models.GeneratedCampaign.ad_groups).selectinload(models.AdGroup.keywords),
                )
                .where(models.GeneratedCampaign.id == uuid.UUID(campaign_id))
            )
            row = result.scalar_one_or_none()
            return Campaign.model_validate(_campaign_to_dict(row)) if row else None

    async def update_campaign_set_status(self, set_id: str, status: str, sync_status: str) -> None:
        async with self.session_factory() as db:
            row = await db.get(models.CampaignSet, uuid.UUID(set_id))
            if not row:
                return
            row.status = status
            row.sync_status = sync_status
            if sync_status == "synced":
                row.last_synced_at = utcnow()
            await db.commit()

    async def update_campaign_sync_status(self, campaign_id: str, sync_status: str, error: Optional[str] = None) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            if not campaign:
                return
            record = await self._get_or_create_record(db, campaign)
            record.sync_status = sync_status
            record.error_log = error
            if sync_status == "synced":
                record.last_synced_at = utcnow()
            await db.commit()

    # ── Regenerated hierarchy ─────────────────────────────────────────

    async def save_generated_entities(self, set_id: str, entities: list[GeneratedEntity]) -> None:
        async with self.session_factory() as db:
            set_row = await db.get(models.CampaignSet, uuid.UUID(set_id))
            if not set_row:
                logger.warning(f"save_generated_entities: campaign set {set_id} not found")
                return
            for entity in entities:
                if isinstance(entity, Campaign):
                    row = await db.get(models.GeneratedCampaign, uuid.UUID(entity.id))
                    if row is None:
                        row = models.GeneratedCampaign(
                            id=uuid.UUID(entity.id), campaign_set_id=set_row.id, user_id=set_row.user_id,
                        )
                        db.add(row)
                    row.name = entity.name
                    row.platform = entity.platform
                    row.order_index = entity.order_index
                    row.status = entity.status
                    row.campaign_data = entity.campaign_data
                    row.platform_data = entity.platform_data
                    row.budget = entity.budget.model_dump() if entity.budget else None
                elif isinstance(entity, AdGroup):
                    row = await db.get(models.AdGroup, uuid.UUID(entity.id))
                    if row is None:
                        row = models.AdGroup(id=uuid.UUID(entity.id))
                        db.add(row)
                    row.campaign_id = uuid.UUID(entity.campaign_id)
                    row.name = entity.name
                    row.order_index = entity.order_index
                    row.settings = entity.settings
                    row.status = entity.status
                elif isinstance(entity, Ad):
                    row = await db.get(models.Ad, uuid.UUID(entity.id))
                    if row is None:
                        row = models.Ad(id=uuid.UUID(entity.id))
                        db.add(row)
                    row.ad_group_id = uuid.UUID(entity.ad_group_id)
                    row.order_index = entity.order_index
                    row.headline = entity.headline
                    row.description = entity.description
                    row.display_url = entity.display_url
                    row.final_url = entity.final_url
                    row.call_to_action = entity.call_to_action
                    row.assets = entity.assets.model_dump() if entity.assets else None
                    row.status = entity.status
                else:
                    row = await db.get(models.Keyword, uuid.UUID(entity.id))
                    if row is None:
                        row = models.Keyword(id=uuid.UUID(entity.id))
                        db.add(row)
                    row.ad_group_id = uuid.UUID(entity.ad_group_id)
                    row.keyword = entity.keyword
                    row.match_type = entity.match_type
                    row.bid = entity.bid
                    row.status = entity.status
            await db.commit()
            logger.info(f"Saved {len(entities)} regenerated entities for campaign set {set_id}")

    async def delete_entity(self, kind: EntityKindName, entity_id: str) -> None:
        model = {
            "campaign": models.GeneratedCampaign,
            "ad_group": models.AdGroup,
            "ad": models.Ad,
            "keyword": models.Keyword,
        }[kind]
        async with self.session_factory() as db:
            row = await db.get(model, uuid.UUID(entity_id))
            if not row:
                return
            await db.delete(row)
            await db.commit()

    # ── Platform id writeback ─────────────────────────────────────────

    async def update_campaign_platform_id(self, campaign_id: str, platform_id: str) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            if not campaign:
                logger.warning(f"update_campaign_platform_id: campaign {campaign_id} not found")
                return
            record = await self._get_or_create_record(db, campaign)
            record.platform_id = platform_id
            await db.commit()

    async def _set_child_platform_id(self, model, entity_id: str, column: str, platform_id: str) -> None:
        async with self.session_factory() as db:
            row = await db.get(model, uuid.UUID(entity_id))
            if not row:
                logger.warning(f"{model.__tablename__}: {entity_id} not found for platform id writeback")
                return
            setattr(row, column, platform_id)
            await db.commit()

    async def update_ad_group_platform_id(self, ad_group_id: str, platform_id: str) -> None:
        await self._set_child_platform_id(models.AdGroup, ad_group_id, "platform_ad_group_id", platform_id)

    async def update_ad_platform_id(self, ad_id: str, platform_id: str) -> None:
        await self._set_child_platform_id(models.Ad, ad_id, "platform_ad_id", platform_id)

    async def update_keyword_platform_id(self, keyword_id: str, platform_id: str) -> None:
        await self._set_child_platform_id(models.Keyword, keyword_id, "platform_keyword_id", platform_id)

    # ── Reconciliation ────────────────────────────────────────────────

    async def get_synced_campaigns_for_account(self, ad_account_id: str) -> list[SyncedCampaign]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(models.GeneratedCampaign, models.SyncRecord)
                .join(models.SyncRecord, models.SyncRecord.generated_campaign_id == models.GeneratedCampaign.id)
                .join(models.CampaignSet, models.CampaignSet.id == models.GeneratedCampaign.campaign_set_id)
                .where(
                    models.SyncRecord.platform_id.is_not(None),
                    models.CampaignSet.config["ad_account_id"].as_string() == ad_account_id,
                )
            )
            return [
                SyncedCampaign(
                    id=str(campaign.id),
                    platform_campaign_id=record.platform_id,
                    local_status=campaign.status,
                    last_synced_at=record.last_synced_at or EPOCH,
                    local_updated_at=campaign.updated_at or EPOCH,
                    platform=campaign.platform,
                )
                for campaign, record in result.all()
            ]

    async def mark_campaign_deleted_on_platform(self, campaign_id: str) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            if not campaign:
                return
            record = await self._get_or_create_record(db, campaign)
            record.sync_status = "failed"
            record.error_log = DELETED_ON_PLATFORM_MESSAGE
            campaign.status = "error"
            await db.commit()

    async def mark_campaign_conflict(self, campaign_id: str, details: ConflictDetails) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            if not campaign:
                return
            record = await self._get_or_create_record(db, campaign)
            record.sync_status = "conflict"
            record.conflict_details = details.model_dump(mode="json")
            await db.commit()

    async def update_campaign_from_platform(self, campaign_id: str, platform_status: PlatformCampaignStatus) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            if not campaign:
                return
            campaign.status = _LOCAL_STATUS_FROM_PLATFORM.get(platform_status.status, "error")
            if platform_status.budget:
                data = dict(campaign.campaign_data or {})
                data["budget"] = platform_status.budget.model_dump()
                campaign.campaign_data = data
            record = await self._get_or_create_record(db, campaign)
            record.sync_status = "synced"
            record.error_log = None
            record.conflict_details = None
            # campaign.updated_at moves with this write; keep the sync baseline at or after it
            now = utcnow()
            campaign.updated_at = now
            record.last_synced_at = now
            await db.commit()

    async def resolve_campaign_conflict(self, campaign_id: str, resolution: ConflictResolution) -> bool:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            record = campaign.sync_record if campaign else None
            if not record or record.sync_status != "conflict":
                return False

            details = record.conflict_details or {}
            if resolution == "keep_platform":
                campaign.status = _LOCAL_STATUS_FROM_PLATFORM.get(details.get("platform_status"), "error")
                record.sync_status = "synced"
                now = utcnow()
                campaign.updated_at = now
                record.last_synced_at = now
            else:
                # next outbound sync pushes the local value
                record.sync_status = "pending"
            record.conflict_details = None
            record.error_log = None
            await db.commit()
            logger.info(f"Conflict on campaign {campaign_id} resolved with {resolution}")
            return True

    # ── Retry queue ───────────────────────────────────────────────────

    async def get_failed_campaigns_for_retry(self, user_id: str, max_retries: int) -> list[FailedCampaignForRetry]:
        now = utcnow()
        async with self.session_factory() as db:
            result = await db.execute(
                select(models.SyncRecord)
                .join(models.GeneratedCampaign, models.GeneratedCampaign.id == models.SyncRecord.generated_campaign_id)
                .where(
                    models.GeneratedCampaign.user_id == uuid.UUID(user_id),
                    models.SyncRecord.sync_status == "failed",
                    models.SyncRecord.permanent_failure.is_(False),
                    models.SyncRecord.retry_count < max_retries,
                    (models.SyncRecord.next_retry_at.is_(None)) | (models.SyncRecord.next_retry_at <= now),
                )
                .order_by(models.SyncRecord.next_retry_at.asc().nulls_first())
            )
            return [
                FailedCampaignForRetry(
                    sync_record_id=str(r.id),
                    campaign_id=str(r.generated_campaign_id),
                    platform=r.platform,
                    retry_count=r.retry_count or 0,
                    error_log=r.error_log,
                    last_retry_at=r.last_retry_at,
                    next_retry_at=r.next_retry_at,
                )
                for r in result.scalars().all()
            ]

    async def increment_retry_count(self, campaign_id: str) -> int:
        async with self.session_factory() as db:
            record = await self._get_record(db, campaign_id)
            if not record:
                return 0
            record.retry_count = (record.retry_count or 0) + 1
            now = utcnow()
            record.last_retry_at = now
            delay_ms = calculate_backoff_delay(record.retry_count, self.backoff_config)
            record.next_retry_at = now + timedelta(milliseconds=delay_ms)
            await db.commit()
            return record.retry_count

    async def mark_permanent_failure(self, campaign_id: str, reason: Optional[str] = None) -> None:
        async with self.session_factory() as db:
            campaign = await self._get_campaign(db, campaign_id)
            record = campaign.sync_record if campaign else None
            if not record:
                return
            record.permanent_failure = True
            record.error_log = f"PERMANENT FAILURE: {reason or record.error_log or 'Max retries exceeded'}"
            record.next_retry_at = None
            campaign.status = "error"
            await db.commit()
            logger.warning(f"Campaign {campaign_id} marked as permanent failure: {record.error_log}")

    async def reset_sync_for_retry(self, campaign_id: str) -> None:
        async with self.session_factory() as db:
            record = await self._get_record(db, campaign_id)
            if not record:
                return
            record.sync_status = "pending"
            record.error_log = None
            await db.commit()
