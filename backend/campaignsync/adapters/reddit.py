"""
Reddit Ads Adapter — Reddit Ads API v3 (ads-api.reddit.com/api/v3).

Writes are wrapped in {"data": ...}. Creates go under /ad_accounts/{account_id},
updates/deletes address the entity directly (/campaigns/{id}, /ad_groups/{id}, /ads/{id}).
Money is sent in micro-units. Reddit has no keywords (subreddit/interest targeting
instead) so keyword operations are no-ops.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from campaignsync.adapters.base import (
    AdapterResult,
    ApiClient,
    PlatformAdapter,
    PlatformApiError,
    PlatformPoller,
)
from campaignsync.schemas import (
    Ad,
    AdGroup,
    Campaign,
    Keyword,
    PlatformBudget,
    PlatformCampaignStatus,
)
from campaignsync.utils import from_micro_units, to_micro_units

logger = logging.getLogger(__name__)

REDDIT_CALLS_TO_ACTION = (
    "LEARN_MORE", "SIGN_UP", "SHOP_NOW", "DOWNLOAD", "INSTALL", "GET_QUOTE",
    "CONTACT_US", "BOOK_NOW", "APPLY_NOW", "WATCH_MORE", "GET_STARTED",
    "SUBSCRIBE", "ORDER_NOW", "SEE_MORE", "VIEW_MORE", "PLAY_NOW",
)

_OBJECTIVES = {
    "awareness": "IMPRESSIONS",
    "impressions": "IMPRESSIONS",
    "consideration": "CLICKS",
    "clicks": "CLICKS",
    "traffic": "CLICKS",
    "conversions": "CONVERSIONS",
    "video_views": "VIDEO_VIEWABLE_IMPRESSIONS",
    "video": "VIDEO_VIEWABLE_IMPRESSIONS",
    "video_viewable_impressions": "VIDEO_VIEWABLE_IMPRESSIONS",
    "app_installs": "APP_INSTALLS",
    "lead_generation": "LEAD_GENERATION",
    "leads": "LEAD_GENERATION",
    "catalog_sales": "CATALOG_SALES",
}

_BID_STRATEGIES = {
    "automatic": "MAXIMIZE_VOLUME",
    "auto": "MAXIMIZE_VOLUME",
    "maximize_volume": "MAXIMIZE_VOLUME",
    "manual_cpc": "MANUAL_BIDDING",
    "manual_cpm": "MANUAL_BIDDING",
    "manual": "MANUAL_BIDDING",
    "manual_bidding": "MANUAL_BIDDING",
    "target_cpa": "TARGET_CPX",
    "target_cpx": "TARGET_CPX",
    "target": "TARGET_CPX",
    "bidless": "BIDLESS",
    "none": "BIDLESS",
}

_BID_TYPES = {
    "manual_cpm": "CPM",
    "cpm": "CPM",
    "cpv": "CPV",
    "video": "CPV",
}

_STATUS_FROM_REDDIT = {
    "ACTIVE": "active",
    "PAUSED": "paused",
    "COMPLETED": "completed",
    "DELETED": "deleted",
}


# ── Field mapping ─────────────────────────────────────────────────────

def map_objective(objective: Optional[str]) -> str:
    if not objective:
        return "IMPRESSIONS"
    mapped = _OBJECTIVES.get(objective.lower())
    if mapped is None:
        logger.warning(f"Reddit: unknown objective '{objective}', defaulting to IMPRESSIONS")
        return "IMPRESSIONS"
    return mapped


def map_bid_strategy(strategy: Optional[str]) -> str:
    if not strategy:
        return "MAXIMIZE_VOLUME"
    mapped = _BID_STRATEGIES.get(strategy.lower())
    if mapped is None:
        logger.warning(f"Reddit: unknown bid strategy '{strategy}', defaulting to MAXIMIZE_VOLUME")
        return "MAXIMIZE_VOLUME"
    return mapped


def map_bid_type(strategy: Optional[str]) -> str:
    return _BID_TYPES.get((strategy or "").lower(), "CPC")


def map_call_to_action(cta: Optional[str]) -> str:
    if not cta:
        return "LEARN_MORE"
    normalized = cta.upper().replace("-", "_")
    if normalized not in REDDIT_CALLS_TO_ACTION:
        logger.warning(f"Reddit: invalid call-to-action '{cta}', defaulting to LEARN_MORE")
        return "LEARN_MORE"
    return normalized


def _positive_float(value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def extract_bid_micro(settings: Optional[dict]) -> Optional[int]:
    """max_cpc wins over max_cpm; invalid or non-positive values are ignored."""
    bidding = (settings or {}).get("bidding") or {}
    for key in ("max_cpc", "max_cpm"):
        amount = _positive_float(bidding.get(key))
        if amount is not None:
            return to_micro_units(amount)
    return None


def _campaign_advanced(campaign: Campaign) -> dict:
    data = campaign.campaign_data or {}
    return ((data.get("advanced_settings") or {}).get("reddit") or {}).get("campaign") or {}


def _targeting_payload(targeting: dict) -> dict:
    payload = {
        "subreddits": targeting.get("subreddits"),
        "interests": targeting.get("interests"),
        "locations": targeting.get("locations"),
    }
    if targeting.get("devices"):
        payload["devices"] = [{"type": device} for device in targeting["devices"]]
    return {k: v for k, v in payload.items() if v is not None}


def _budget_fields(budget_type: Optional[str], amount: float) -> dict:
    if budget_type == "lifetime":
        return {"total_budget_micro": to_micro_units(amount)}
    return {"daily_budget_micro": to_micro_units(amount)}


def _goal_fields(budget: Optional[dict]) -> dict:
    amount = _positive_float((budget or {}).get("amount"))
    if amount is None:
        return {}
    goal_type = "LIFETIME_SPEND" if budget.get("type") == "lifetime" else "DAILY_SPEND"
    return {"goal_type": goal_type, "goal_value": to_micro_units(amount)}


# ══════════════════════════════════════════════════════════════════════
#  ADAPTER
# ══════════════════════════════════════════════════════════════════════

class RedditAdsAdapter(PlatformAdapter):
    platform = "reddit"

    def __init__(self, client: ApiClient, account_id: str, funding_instrument_id: Optional[str] = None):
        self.client = client
        self.account_id = account_id
        self.funding_instrument_id = funding_instrument_id

    # ── Campaigns ──

    async def create_campaign(self, campaign: Campaign) -> AdapterResult:
        try:
            response = await self.client.post(
                f"/ad_accounts/{self.account_id}/campaigns",
                {"data": self.build_campaign_payload(campaign)},
            )
            return AdapterResult.ok(response["data"]["id"])
        except (PlatformApiError, KeyError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_campaign(self, campaign: Campaign, platform_campaign_id: str) -> AdapterResult:
        updates: dict[str, Any] = {"name": campaign.name}
        if campaign.budget:
            updates.update(_budget_fields(campaign.budget.type, campaign.budget.amount))
        try:
            await self.client.patch(f"/campaigns/{platform_campaign_id}", {"data": updates})
            return AdapterResult.ok(platform_campaign_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_campaign(self, platform_campaign_id: str) -> None:
        await self.client.delete(f"/campaigns/{platform_campaign_id}")

    async def pause_campaign(self, platform_campaign_id: str) -> None:
        await self.client.patch(f"/campaigns/{platform_campaign_id}", {"data": {"configured_status": "PAUSED"}})

    async def resume_campaign(self, platform_campaign_id: str) -> None:
        await self.client.patch(f"/campaigns/{platform_campaign_id}", {"data": {"configured_status": "ACTIVE"}})

    # ── Ad groups ──

    async def create_ad_group(self, ad_group: AdGroup, platform_campaign_id: str) -> AdapterResult:
        try:
            response = await self.client.post(
                f"/ad_accounts/{self.account_id}/ad_groups",
                {"data": self.build_ad_group_payload(ad_group, platform_campaign_id)},
            )
            return AdapterResult.ok(response["data"]["id"])
        except (PlatformApiError, KeyError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad_group(self, ad_group: AdGroup, platform_ad_group_id: str) -> AdapterResult:
        settings = ad_group.settings or {}
        strategy = (settings.get("bidding") or {}).get("strategy")

        updates: dict[str, Any] = {"name": ad_group.name}
        if strategy:
            updates["bid_strategy"] = map_bid_strategy(strategy)
        bid = extract_bid_micro(settings)
        if bid is not None:
            updates["bid_value"] = bid
        updates.update(_goal_fields(settings.get("budget")))
        if settings.get("targeting"):
            updates["targeting"] = _targeting_payload(settings["targeting"])

        try:
            await self.client.patch(f"/ad_groups/{platform_ad_group_id}", {"data": updates})
            return AdapterResult.ok(platform_ad_group_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad_group(self, platform_ad_group_id: str) -> None:
        await self.client.delete(f"/ad_groups/{platform_ad_group_id}")

    # ── Ads ──

    async def create_ad(self, ad: Ad, platform_ad_group_id: str) -> AdapterResult:
        if not ad.final_url:
            return AdapterResult(success=False, error="Ad finalUrl is required for Reddit ads")
        try:
            response = await self.client.post(
                f"/ad_accounts/{self.account_id}/ads",
                {"data": self.build_ad_payload(ad, platform_ad_group_id)},
            )
            return AdapterResult.ok(response["data"]["id"])
        except (PlatformApiError, KeyError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad(self, ad: Ad, platform_ad_id: str) -> AdapterResult:
        updates: dict[str, Any] = {}
        if ad.headline:
            updates["headline"] = ad.headline[:100]
            updates["name"] = ad.headline[:255]
        if ad.description:
            updates["body"] = ad.description[:500]
        if ad.final_url:
            updates["click_url"] = ad.final_url
        if ad.display_url:
            updates["display_url"] = ad.display_url[:25]
        if ad.call_to_action:
            updates["call_to_action"] = map_call_to_action(ad.call_to_action)
        try:
            await self.client.patch(f"/ads/{platform_ad_id}", {"data": updates})
            return AdapterResult.ok(platform_ad_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad(self, platform_ad_id: str) -> None:
        await self.client.delete(f"/ads/{platform_ad_id}")

    # ── Keywords (no-op) ──

    async def create_keyword(self, keyword: Keyword, platform_ad_group_id: str) -> AdapterResult:
        return AdapterResult.ok(keyword.id)

    async def update_keyword(self, keyword: Keyword, platform_keyword_id: str) -> AdapterResult:
        return AdapterResult.ok(platform_keyword_id)

    async def delete_keyword(self, platform_keyword_id: str) -> None:
        return None

    # ── Payloads ──

    def build_campaign_payload(self, campaign: Campaign) -> dict:
        data = campaign.campaign_data or {}
        advanced = _campaign_advanced(campaign)
        payload: dict[str, Any] = {
            "name": campaign.name,
            "objective": map_objective(data.get("objective")),
            "configured_status": "ACTIVE",
            "special_ad_categories": (
                advanced.get("special_ad_categories")
                or data.get("special_ad_categories")
                or ["NONE"]
            ),
        }
        if self.funding_instrument_id:
            payload["funding_instrument_id"] = self.funding_instrument_id
        if campaign.budget:
            payload.update(_budget_fields(campaign.budget.type, campaign.budget.amount))
        for key in ("start_time", "end_time"):
            if advanced.get(key):
                payload[key] = advanced[key]
        for key in ("view_through_attribution_window_days", "click_through_attribution_window_days"):
            if advanced.get(key) is not None:
                payload[key] = advanced[key]
        return payload

    def build_ad_group_payload(self, ad_group: AdGroup, platform_campaign_id: str) -> dict:
        settings = ad_group.settings or {}
        strategy = (settings.get("bidding") or {}).get("strategy")
        payload: dict[str, Any] = {
            "name": ad_group.name,
            "campaign_id": platform_campaign_id,
            "bid_strategy": map_bid_strategy(strategy),
            "bid_type": map_bid_type(strategy),
            "configured_status": "ACTIVE",
        }
        bid = extract_bid_micro(settings)
        if bid is not None:
            payload["bid_value"] = bid
        payload.update(_goal_fields(settings.get("budget")))
        if settings.get("targeting"):
            payload["targeting"] = _targeting_payload(settings["targeting"])

        advanced = ((settings.get("advanced_settings") or {}).get("reddit") or {}).get("ad_group") or {}
        for key in ("start_time", "end_time"):
            value = advanced.get(key) or settings.get(key)
            if value:
                payload[key] = value
        return payload

    def build_ad_payload(self, ad: Ad, platform_ad_group_id: str) -> dict:
        headline = ad.headline or "Untitled Ad"
        payload = {
            "name": headline[:255],
            "ad_group_id": platform_ad_group_id,
            "headline": headline[:100],
            "click_url": ad.final_url,
            "call_to_action": map_call_to_action(ad.call_to_action),
        }
        if ad.description:
            payload["body"] = ad.description[:500]
        if ad.display_url:
            payload["display_url"] = ad.display_url[:25]
        return payload


# ══════════════════════════════════════════════════════════════════════
#  POLLER
# ══════════════════════════════════════════════════════════════════════

def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_platform_status(raw: dict) -> PlatformCampaignStatus:
    """Reddit campaign payload → PlatformCampaignStatus. Daily budget wins over lifetime."""
    reddit_status = raw.get("status") or raw.get("configured_status") or ""
    budget = None
    if raw.get("daily_budget_micro"):
        budget = PlatformBudget(type="daily", amount=from_micro_units(raw["daily_budget_micro"]))
    elif raw.get("total_budget_micro"):
        budget = PlatformBudget(type="lifetime", amount=from_micro_units(raw["total_budget_micro"]))
    return PlatformCampaignStatus(
        platform_id=str(raw["id"]),
        status=_STATUS_FROM_REDDIT.get(reddit_status.upper(), "error"),
        budget=budget,
        last_modified=_parse_timestamp(raw.get("updated_at") or raw.get("modified_at")),
    )


class RedditPoller(PlatformPoller):
    platform = "reddit"

    def __init__(self, client: ApiClient, account_id: str):
        self.client = client
        self.account_id = account_id

    async def get_campaign_status(self, platform_campaign_id: str) -> Optional[PlatformCampaignStatus]:
        try:
            response = await self.client.get(f"/campaigns/{platform_campaign_id}")
        except PlatformApiError as e:
            if e.status_code == 404:
                return None
            raise
        return to_platform_status(response["data"])

    async def list_campaign_statuses(self) -> list[PlatformCampaignStatus]:
        response = await self.client.get(f"/ad_accounts/{self.account_id}/campaigns")
        return [to_platform_status(raw) for raw in response.get("data") or []]


def build_reddit_client(
    base_url: str,
    access_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ApiClient:
    return ApiClient(
        base_url,
        headers={
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        },
        platform="Reddit",
        transport=transport,
    )
