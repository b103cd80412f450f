"""
Diff Sync Service — Minimal changes between a persisted campaign set and a regeneration.

calculate_diff() is pure: two in-memory trees in, a CampaignSetDiff out. Identity is
always the local id, never the name or the platform id.

apply_diff() pushes a diff to the ad platforms in dependency order:
  removals → creates → updates, parent before child.
It is a best-effort batch executor: one entity failing never stops the rest,
and only a missing campaign set or missing wiring short-circuits the batch.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union, assert_never

from pydantic import BaseModel, Field

from campaignsync.adapters.base import AdapterResult, PlatformAdapter
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import (
    Ad,
    AdGroup,
    Campaign,
    CampaignSet,
    DiffSyncResult,
    Keyword,
    SyncError,
)
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from campaignsync.services.platform_calls import GuardedCaller
from campaignsync.utils import error_message

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  DIFF TYPES
# ══════════════════════════════════════════════════════════════════════

class CampaignUpdate(BaseModel):
    campaign: Campaign
    changes: list[str]


class AdGroupWithCampaign(BaseModel):
    ad_group: AdGroup
    campaign_id: str


class AdGroupUpdate(AdGroupWithCampaign):
    changes: list[str]


class AdWithAdGroup(BaseModel):
    ad: Ad
    ad_group_id: str


class AdUpdate(AdWithAdGroup):
    changes: list[str]


class KeywordWithAdGroup(BaseModel):
    keyword: Keyword
    ad_group_id: str


class KeywordUpdate(KeywordWithAdGroup):
    changes: list[str]


class CampaignSetDiff(BaseModel):
    campaigns_to_add: list[Campaign] = Field(default_factory=list)
    campaigns_to_update: list[CampaignUpdate] = Field(default_factory=list)
    campaigns_to_remove: list[str] = Field(default_factory=list)

    ad_groups_to_add: list[AdGroupWithCampaign] = Field(default_factory=list)
    ad_groups_to_update: list[AdGroupUpdate] = Field(default_factory=list)
    ad_groups_to_remove: list[str] = Field(default_factory=list)

    ads_to_add: list[AdWithAdGroup] = Field(default_factory=list)
    ads_to_update: list[AdUpdate] = Field(default_factory=list)
    ads_to_remove: list[str] = Field(default_factory=list)

    keywords_to_add: list[KeywordWithAdGroup] = Field(default_factory=list)
    keywords_to_update: list[KeywordUpdate] = Field(default_factory=list)
    keywords_to_remove: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in type(self).model_fields)


# ── Change detection ──────────────────────────────────────────────────

CAMPAIGN_FIELDS = ("name", "status", "budget", "campaign_data", "platform_data")
AD_GROUP_FIELDS = ("name", "status", "settings")
AD_FIELDS = ("headline", "description", "display_url", "final_url", "call_to_action", "assets", "status")
KEYWORD_FIELDS = ("keyword", "match_type", "bid", "status")

# Free-form bags where an absent value and an empty one mean the same thing
_BAG_FIELDS = {"campaign_data", "platform_data", "settings"}


def _field_value(entity: BaseModel, name: str) -> Any:
    value = getattr(entity, name)
    if name in _BAG_FIELDS:
        return value or {}
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def detect_changes(current: BaseModel, updated: BaseModel, fields: tuple[str, ...]) -> list[str]:
    """Names of tracked fields whose values differ by structural equality."""
    return [name for name in fields if _field_value(current, name) != _field_value(updated, name)]


def _flatten(campaigns: list[Campaign]) -> tuple[dict, dict, dict, dict]:
    campaign_map: dict[str, Campaign] = {}
    ad_group_map: dict[str, AdGroup] = {}
    ad_map: dict[str, Ad] = {}
    keyword_map: dict[str, Keyword] = {}
    for campaign in campaigns:
        campaign_map[campaign.id] = campaign
        for ad_group in campaign.ad_groups:
            ad_group_map[ad_group.id] = ad_group
            for ad in ad_group.ads:
                ad_map[ad.id] = ad
            for keyword in ad_group.keywords:
                keyword_map[keyword.id] = keyword
    return campaign_map, ad_group_map, ad_map, keyword_map


def calculate_diff(current_set: CampaignSet, generated_campaigns: list[Campaign]) -> CampaignSetDiff:
    """Add / update / remove lists at every level, keyed by local id. No I/O."""
    cur_campaigns, cur_ad_groups, cur_ads, cur_keywords = _flatten(current_set.campaigns)
    new_campaigns, new_ad_groups, new_ads, new_keywords = _flatten(generated_campaigns)

    diff = CampaignSetDiff()

    for cid, campaign in new_campaigns.items():
        existing = cur_campaigns.get(cid)
        if existing is None:
            diff.campaigns_to_add.append(campaign)
        elif changes := detect_changes(existing, campaign, CAMPAIGN_FIELDS):
            diff.campaigns_to_update.append(CampaignUpdate(campaign=campaign, changes=changes))
    diff.campaigns_to_remove = [cid for cid in cur_campaigns if cid not in new_campaigns]

    for agid, ad_group in new_ad_groups.items():
        existing = cur_ad_groups.get(agid)
        if existing is None:
            diff.ad_groups_to_add.append(AdGroupWithCampaign(ad_group=ad_group, campaign_id=ad_group.campaign_id))
        elif changes := detect_changes(existing, ad_group, AD_GROUP_FIELDS):
            diff.ad_groups_to_update.append(
                AdGroupUpdate(ad_group=ad_group, campaign_id=ad_group.campaign_id, changes=changes)
            )
    diff.ad_groups_to_remove = [agid for agid in cur_ad_groups if agid not in new_ad_groups]

    for aid, ad in new_ads.items():
        existing = cur_ads.get(aid)
        if existing is None:
            diff.ads_to_add.append(AdWithAdGroup(ad=ad, ad_group_id=ad.ad_group_id))
        elif changes := detect_changes(existing, ad, AD_FIELDS):
            diff.ads_to_update.append(AdUpdate(ad=ad, ad_group_id=ad.ad_group_id, changes=changes))
    diff.ads_to_remove = [aid for aid in cur_ads if aid not in new_ads]

    for kid, keyword in new_keywords.items():
        existing = cur_keywords.get(kid)
        if existing is None:
            diff.keywords_to_add.append(KeywordWithAdGroup(keyword=keyword, ad_group_id=keyword.ad_group_id))
        elif changes := detect_changes(existing, keyword, KEYWORD_FIELDS):
            diff.keywords_to_update.append(
                KeywordUpdate(keyword=keyword, ad_group_id=keyword.ad_group_id, changes=changes)
            )
    diff.keywords_to_remove = [kid for kid in cur_keywords if kid not in new_keywords]

    return diff


# ══════════════════════════════════════════════════════════════════════
#  SYNC OPERATIONS
# ══════════════════════════════════════════════════════════════════════

class EntityKind(str, enum.Enum):
    CAMPAIGN = "campaign"
    AD_GROUP = "ad_group"
    AD = "ad"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class CreateOperation:
    kind: EntityKind
    entity: Union[Campaign, AdGroup, Ad, Keyword]
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateOperation:
    kind: EntityKind
    entity: Union[Campaign, AdGroup, Ad, Keyword]
    changes: tuple[str, ...] = ()
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class DeleteOperation:
    kind: EntityKind
    entity_id: str


SyncOperation = Union[CreateOperation, UpdateOperation, DeleteOperation]


def parent_index(campaign_set: CampaignSet) -> dict[str, str]:
    """Child id → parent id for every ad group, ad and keyword in a persisted set."""
    parents: dict[str, str] = {}
    for campaign in campaign_set.campaigns:
        for ad_group in campaign.ad_groups:
            parents[ad_group.id] = campaign.id
            for ad in ad_group.ads:
                parents[ad.id] = ad_group.id
            for keyword in ad_group.keywords:
                parents[keyword.id] = ad_group.id
    return parents


def plan_operations(diff: CampaignSetDiff, parents: Optional[dict[str, str]] = None) -> list[SyncOperation]:
    """
    Flatten a diff into execution order: removals, then creates, then updates,
    each parent-first. With a parent index, removals under a removed parent are
    dropped since the parent delete already takes them with it.
    """
    parents = parents or {}
    removed = set(diff.campaigns_to_remove) | set(diff.ad_groups_to_remove)

    def covered(entity_id: str) -> bool:
        parent = parents.get(entity_id)
        while parent is not None:
            if parent in removed:
                return True
            parent = parents.get(parent)
        return False

    plan: list[SyncOperation] = []

    plan += [DeleteOperation(EntityKind.CAMPAIGN, cid) for cid in diff.campaigns_to_remove]
    plan += [DeleteOperation(EntityKind.AD_GROUP, agid) for agid in diff.ad_groups_to_remove if not covered(agid)]
    plan += [DeleteOperation(EntityKind.AD, aid) for aid in diff.ads_to_remove if not covered(aid)]
    plan += [DeleteOperation(EntityKind.KEYWORD, kid) for kid in diff.keywords_to_remove if not covered(kid)]

    plan += [CreateOperation(EntityKind.CAMPAIGN, c) for c in diff.campaigns_to_add]
    plan += [CreateOperation(EntityKind.AD_GROUP, a.ad_group, a.campaign_id) for a in diff.ad_groups_to_add]
    plan += [CreateOperation(EntityKind.AD, a.ad, a.ad_group_id) for a in diff.ads_to_add]
    plan += [CreateOperation(EntityKind.KEYWORD, k.keyword, k.ad_group_id) for k in diff.keywords_to_add]

    plan += [UpdateOperation(EntityKind.CAMPAIGN, u.campaign, tuple(u.changes)) for u in diff.campaigns_to_update]
    plan += [UpdateOperation(EntityKind.AD_GROUP, u.ad_group, tuple(u.changes), u.campaign_id)
             for u in diff.ad_groups_to_update]
    plan += [UpdateOperation(EntityKind.AD, u.ad, tuple(u.changes), u.ad_group_id) for u in diff.ads_to_update]
    plan += [UpdateOperation(EntityKind.KEYWORD, u.keyword, tuple(u.changes), u.ad_group_id)
             for u in diff.keywords_to_update]

    return plan


def regenerated_entities(diff: CampaignSetDiff) -> list[Union[Campaign, AdGroup, Ad, Keyword]]:
    """Added and updated entities of a diff, parents before children."""
    entities: list[Union[Campaign, AdGroup, Ad, Keyword]] = []
    entities += diff.campaigns_to_add
    entities += [u.campaign for u in diff.campaigns_to_update]
    entities += [a.ad_group for a in diff.ad_groups_to_add + diff.ad_groups_to_update]
    entities += [a.ad for a in diff.ads_to_add + diff.ads_to_update]
    entities += [k.keyword for k in diff.keywords_to_add + diff.keywords_to_update]
    return entities


# ══════════════════════════════════════════════════════════════════════
#  APPLY
# ══════════════════════════════════════════════════════════════════════

@dataclass
class _ApplyState:
    """Lookups and counters for one apply_diff() run."""
    campaigns: dict[str, Campaign] = field(default_factory=dict)
    ad_groups: dict[str, AdGroup] = field(default_factory=dict)
    ads: dict[str, Ad] = field(default_factory=dict)
    keywords: dict[str, Keyword] = field(default_factory=dict)
    # child id → owning campaign id; platform ids resolved so far
    campaign_of: dict[str, str] = field(default_factory=dict)
    platform_ids: dict[str, str] = field(default_factory=dict)
    created: int = 0
    updated: int = 0
    removed: int = 0
    skipped: int = 0
    errors: list[SyncError] = field(default_factory=list)
    failed_campaigns: set[str] = field(default_factory=set)
    skipped_campaigns: set[str] = field(default_factory=set)


class DiffSyncService:
    def __init__(
        self,
        adapters: Optional[dict[str, PlatformAdapter]] = None,
        repository: Optional[CampaignSetRepository] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.adapters = adapters
        self.repository = repository
        self.caller = GuardedCaller(breakers or CircuitBreakerRegistry(), timeout_seconds)

    def calculate_diff(self, current_set: CampaignSet, generated_campaigns: list[Campaign]) -> CampaignSetDiff:
        return calculate_diff(current_set, generated_campaigns)

    def plan(self, diff: CampaignSetDiff, current_set: Optional[CampaignSet] = None) -> list[SyncOperation]:
        parents = parent_index(current_set) if current_set is not None else None
        return plan_operations(diff, parents)

    async def apply_diff(self, set_id: str, diff: CampaignSetDiff) -> DiffSyncResult:
        if self.adapters is None or self.repository is None:
            return DiffSyncResult(success=False, errors=[SyncError(
                code="SERVICE_NOT_CONFIGURED",
                message="Service not configured with adapters and repository",
            )])

        campaign_set = await self.repository.get_campaign_set_with_relations(set_id)
        if campaign_set is None:
            return DiffSyncResult(success=False, errors=[SyncError(
                code="CAMPAIGN_SET_NOT_FOUND",
                message=f"Campaign set with ID {set_id} not found",
            )])

        # every created entity needs a local row to receive its platform id
        try:
            await self.repository.save_generated_entities(set_id, regenerated_entities(diff))
        except Exception as e:
            logger.error(f"Saving regenerated entities for {set_id} failed: {error_message(e)}", exc_info=True)
            return DiffSyncResult(success=False, errors=[SyncError(
                code="LOCAL_SAVE_FAILED",
                message=f"Regenerated campaigns could not be saved: {error_message(e)}",
            )])

        state = self._build_state(campaign_set, diff)
        operations = self.plan(diff, campaign_set)
        logger.info(f"Applying diff to campaign set {set_id}: {len(operations)} operation(s)")

        for op in operations:
            match op:
                case DeleteOperation():
                    await self._apply_delete(op, state)
                case CreateOperation():
                    await self._apply_create(op, state)
                case UpdateOperation():
                    await self._apply_update(op, state)
                case _:
                    assert_never(op)

        await self._write_back_statuses(campaign_set, diff, state)

        logger.info(f"Diff applied to {set_id}: created={state.created} updated={state.updated} "
                    f"removed={state.removed} skipped={state.skipped} errors={len(state.errors)}")
        return DiffSyncResult(
            success=not state.errors,
            created=state.created,
            updated=state.updated,
            removed=state.removed,
            skipped=state.skipped,
            errors=state.errors,
        )

    # ── State ─────────────────────────────────────────────────────────

    @staticmethod
    def _build_state(campaign_set: CampaignSet, diff: CampaignSetDiff) -> _ApplyState:
        state = _ApplyState()
        for campaign in campaign_set.campaigns:
            state.campaigns[campaign.id] = campaign
            if campaign.platform_campaign_id:
                state.platform_ids[campaign.id] = campaign.platform_campaign_id
            for ad_group in campaign.ad_groups:
                state.ad_groups[ad_group.id] = ad_group
                state.campaign_of[ad_group.id] = campaign.id
                if ad_group.platform_ad_group_id:
                    state.platform_ids[ad_group.id] = ad_group.platform_ad_group_id
                for ad in ad_group.ads:
                    state.ads[ad.id] = ad
                    state.campaign_of[ad.id] = campaign.id
                    if ad.platform_ad_id:
                        state.platform_ids[ad.id] = ad.platform_ad_id
                for keyword in ad_group.keywords:
                    state.keywords[keyword.id] = keyword
                    state.campaign_of[keyword.id] = campaign.id
                    if keyword.platform_keyword_id:
                        state.platform_ids[keyword.id] = keyword.platform_keyword_id

        # New entities: platform comes from the owning campaign, which may itself be new
        for campaign in diff.campaigns_to_add:
            state.campaigns.setdefault(campaign.id, campaign)
        for item in diff.ad_groups_to_add + diff.ad_groups_to_update:
            state.campaign_of.setdefault(item.ad_group.id, item.campaign_id)
        children = [(i.ad.id, i.ad_group_id) for i in diff.ads_to_add + diff.ads_to_update]
        children += [(i.keyword.id, i.ad_group_id) for i in diff.keywords_to_add + diff.keywords_to_update]
        for child_id, ad_group_id in children:
            if owner := state.campaign_of.get(ad_group_id):
                state.campaign_of.setdefault(child_id, owner)
        return state

    def _platform_for(self, entity_id: str, state: _ApplyState) -> tuple[Optional[str], Optional[str]]:
        """(owning campaign id, platform) for any entity id."""
        campaign_id = entity_id if entity_id in state.campaigns else state.campaign_of.get(entity_id)
        campaign = state.campaigns.get(campaign_id) if campaign_id else None
        return campaign_id, campaign.platform if campaign else None

    def _error(self, state: _ApplyState, code: str, campaign_id: Optional[str], platform: Optional[str], message: str) -> None:
        state.errors.append(SyncError(campaign_id=campaign_id or "", platform=platform or "", code=code, message=message))
        if campaign_id:
            state.failed_campaigns.add(campaign_id)
        logger.warning(f"Diff apply [{code}] campaign={campaign_id} platform={platform}: {message}")

    def _adapter(self, platform: Optional[str]) -> Optional[PlatformAdapter]:
        return self.adapters.get(platform) if platform else None

    # ── Removals ──────────────────────────────────────────────────────

    async def _apply_delete(self, op: DeleteOperation, state: _ApplyState) -> None:
        platform_id = state.platform_ids.get(op.entity_id)
        campaign_id, platform = self._platform_for(op.entity_id, state)
        if platform_id:
            adapter = self._adapter(platform)
            if adapter is None:
                self._error(state, "NO_ADAPTER", campaign_id, platform, f"No adapter for platform: {platform}")
                return

            delete = {
                EntityKind.CAMPAIGN: adapter.delete_campaign,
                EntityKind.AD_GROUP: adapter.delete_ad_group,
                EntityKind.AD: adapter.delete_ad,
                EntityKind.KEYWORD: adapter.delete_keyword,
            }[op.kind]
            try:
                await self.caller.call(platform, delete, platform_id)
            except CircuitOpenError:
                state.skipped += 1
                return
            except Exception as e:
                self._error(state, "DELETE_FAILED", campaign_id, platform, error_message(e))
                return
            state.removed += 1

        # local row goes only once nothing remote is left behind it
        try:
            await self.repository.delete_entity(op.kind.value, op.entity_id)
        except Exception as e:
            self._error(state, "LOCAL_DELETE_FAILED", campaign_id, platform, error_message(e))

    # ── Creates ───────────────────────────────────────────────────────

    async def _apply_create(self, op: CreateOperation, state: _ApplyState) -> None:
        entity = op.entity
        campaign_id, platform = self._platform_for(entity.id, state)
        adapter = self._adapter(platform)
        if adapter is None:
            self._error(state, "NO_ADAPTER", campaign_id, platform, f"No adapter for platform: {platform}")
            return

        match op.kind:
            case EntityKind.CAMPAIGN:
                create, args, persist = adapter.create_campaign, (entity,), self.repository.update_campaign_platform_id
            case EntityKind.AD_GROUP:
                create, args, persist = adapter.create_ad_group, None, self.repository.update_ad_group_platform_id
            case EntityKind.AD:
                create, args, persist = adapter.create_ad, None, self.repository.update_ad_platform_id
            case EntityKind.KEYWORD:
                create, args, persist = adapter.create_keyword, None, self.repository.update_keyword_platform_id
            case _:
                assert_never(op.kind)

        if args is None:
            parent_platform_id = state.platform_ids.get(op.parent_id)
            if not parent_platform_id:
                # parent create failed or was skipped; never dispatch a child before its parent
                self._error(state, "CREATE_FAILED", campaign_id, platform,
                            f"Parent {op.parent_id} of {op.kind.value} {entity.id} has no platform ID")
                return
            args = (entity, parent_platform_id)

        try:
            result: AdapterResult = await self.caller.call(platform, create, *args)
        except CircuitOpenError:
            state.skipped += 1
            state.skipped_campaigns.add(campaign_id)
            return
        except Exception as e:
            self._error(state, "CREATE_EXCEPTION", campaign_id, platform, error_message(e))
            return

        if not result.success:
            self._error(state, "CREATE_FAILED", campaign_id, platform, result.error or "Creation failed")
            return
        if result.platform_id:
            state.platform_ids[entity.id] = result.platform_id
            try:
                await persist(entity.id, result.platform_id)
            except Exception as e:
                # the entity exists remotely; without its id a retry would create a duplicate
                self._error(state, "PLATFORM_ID_PERSIST_FAILED", campaign_id, platform,
                            f"{op.kind.value} {entity.id} was created as {result.platform_id} "
                            f"but its platform ID could not be saved: {error_message(e)}")
                return
        state.created += 1

    # ── Updates ───────────────────────────────────────────────────────

    async def _apply_update(self, op: UpdateOperation, state: _ApplyState) -> None:
        entity = op.entity
        platform_id = state.platform_ids.get(entity.id)
        campaign_id, platform = self._platform_for(entity.id, state)
        if not platform_id:
            logger.info(f"Skipping update of {op.kind.value} {entity.id}: not created on platform yet")
            return

        adapter = self._adapter(platform)
        if adapter is None:
            self._error(state, "NO_ADAPTER", campaign_id, platform, f"No adapter for platform: {platform}")
            return

        update = {
            EntityKind.CAMPAIGN: adapter.update_campaign,
            EntityKind.AD_GROUP: adapter.update_ad_group,
            EntityKind.AD: adapter.update_ad,
            EntityKind.KEYWORD: adapter.update_keyword,
        }[op.kind]
        try:
            result: AdapterResult = await self.caller.call(platform, update, entity, platform_id)
            if result.success:
                state.updated += 1
            else:
                self._error(state, "UPDATE_FAILED", campaign_id, platform, result.error or "Update failed")
        except CircuitOpenError:
            state.skipped += 1
            state.skipped_campaigns.add(campaign_id)
        except Exception as e:
            self._error(state, "UPDATE_EXCEPTION", campaign_id, platform, error_message(e))

    # ── Status write-back ─────────────────────────────────────────────

    async def _write_back_statuses(self, campaign_set: CampaignSet, diff: CampaignSetDiff, state: _ApplyState) -> None:
        touched = {c.id for c in diff.campaigns_to_add} | {u.campaign.id for u in diff.campaigns_to_update}
        touched |= state.failed_campaigns
        touched -= set(diff.campaigns_to_remove)
        messages: dict[str, str] = {}
        for err in state.errors:
            messages.setdefault(err.campaign_id, err.message)

        try:
            for campaign_id in touched:
                if campaign_id in state.failed_campaigns:
                    await self.repository.update_campaign_sync_status(campaign_id, "failed", messages.get(campaign_id))
                elif campaign_id in state.platform_ids and campaign_id not in state.skipped_campaigns:
                    await self.repository.update_campaign_sync_status(campaign_id, "synced")
            if state.errors:
                sync_status = "failed"
            elif state.skipped:
                # part of the diff never reached the platform
                sync_status = "pending"
            else:
                sync_status = "synced"
            await self.repository.update_campaign_set_status(campaign_set.id, campaign_set.status, sync_status)
        except Exception as e:
            self._error(state, "STATUS_WRITE_FAILED", None, None, error_message(e))
