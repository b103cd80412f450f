"""
Facebook Ads Adapter — Meta Marketing API over the Graph API.

Ad groups map to ad sets. Ads need a creative first, then the ad that references it.
Keywords have no Graph entity (interests live in ad set targeting), so keyword
calls hand back a stub "targeting" id. Without an access token and ad account the
adapter runs in test mode.
"""

import logging
from typing import Any, Optional

from campaignsync.adapters.base import (
    AdapterResult,
    ApiClient,
    PlatformAdapter,
    PlatformApiError,
    StubIdMixin,
)
from campaignsync.schemas import Ad, AdGroup, Campaign, Keyword

logger = logging.getLogger(__name__)

_OBJECTIVES = {
    "awareness": "OUTCOME_AWARENESS",
    "impressions": "OUTCOME_AWARENESS",
    "traffic": "OUTCOME_TRAFFIC",
    "clicks": "OUTCOME_TRAFFIC",
    "consideration": "OUTCOME_TRAFFIC",
    "engagement": "OUTCOME_ENGAGEMENT",
    "leads": "OUTCOME_LEADS",
    "lead_generation": "OUTCOME_LEADS",
    "conversions": "OUTCOME_SALES",
    "sales": "OUTCOME_SALES",
    "app_installs": "OUTCOME_APP_PROMOTION",
}


def map_objective(objective: Optional[str]) -> str:
    return _OBJECTIVES.get((objective or "").lower(), "OUTCOME_TRAFFIC")


def map_status(status: Optional[str]) -> str:
    return "ACTIVE" if status == "active" else "PAUSED"


def _cents(amount: float) -> int:
    return int(round(amount * 100))


class FacebookAdsAdapter(StubIdMixin, PlatformAdapter):
    platform = "facebook"
    id_prefix = "fb"

    def __init__(self, client: Optional[ApiClient] = None, ad_account_id: Optional[str] = None):
        self.client = client
        if ad_account_id and not ad_account_id.startswith("act_"):
            ad_account_id = f"act_{ad_account_id}"
        self.ad_account_id = ad_account_id
        self.test_mode = client is None or not ad_account_id
        if self.test_mode:
            logger.info("Facebook adapter running in test mode (no ad account configured)")

    async def _create(self, edge: str, payload: dict) -> str:
        response = await self.client.post(f"/{self.ad_account_id}/{edge}", payload)
        if not response.get("id"):
            raise PlatformApiError(f"Facebook {edge} create returned no id", details=response)
        return str(response["id"])

    # ── Campaigns ──

    async def create_campaign(self, campaign: Campaign) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("campaign", campaign.id))
        data = campaign.campaign_data or {}
        payload: dict[str, Any] = {
            "name": campaign.name,
            "objective": map_objective(data.get("objective")),
            "status": "PAUSED",
            "special_ad_categories": data.get("special_ad_categories") or [],
        }
        if campaign.budget:
            key = "lifetime_budget" if campaign.budget.type == "lifetime" else "daily_budget"
            payload[key] = _cents(campaign.budget.amount)
        try:
            return AdapterResult.ok(await self._create("campaigns", payload))
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_campaign(self, campaign: Campaign, platform_campaign_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(platform_campaign_id)
        payload: dict[str, Any] = {"name": campaign.name}
        if campaign.budget:
            key = "lifetime_budget" if campaign.budget.type == "lifetime" else "daily_budget"
            payload[key] = _cents(campaign.budget.amount)
        try:
            await self.client.post(f"/{platform_campaign_id}", payload)
            return AdapterResult.ok(platform_campaign_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def _set_status(self, platform_id: str, status: str) -> None:
        if self.test_mode:
            return
        await self.client.post(f"/{platform_id}", {"status": status})

    async def _delete(self, platform_id: str) -> None:
        if self.test_mode:
            return
        await self.client.delete(f"/{platform_id}")

    async def delete_campaign(self, platform_campaign_id: str) -> None:
        await self._delete(platform_campaign_id)

    async def pause_campaign(self, platform_campaign_id: str) -> None:
        await self._set_status(platform_campaign_id, "PAUSED")

    async def resume_campaign(self, platform_campaign_id: str) -> None:
        await self._set_status(platform_campaign_id, "ACTIVE")

    # ── Ad sets ──

    async def create_ad_group(self, ad_group: AdGroup, platform_campaign_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("adset", ad_group.id))
        settings = ad_group.settings or {}
        payload: dict[str, Any] = {
            "name": ad_group.name,
            "campaign_id": platform_campaign_id,
            "status": map_status(ad_group.status),
            "billing_event": "IMPRESSIONS",
            "optimization_goal": settings.get("optimization_goal", "LINK_CLICKS"),
            "targeting": settings.get("targeting") or {"geo_locations": {"countries": ["US"]}},
        }
        budget = settings.get("budget") or {}
        if budget.get("amount"):
            key = "lifetime_budget" if budget.get("type") == "lifetime" else "daily_budget"
            payload[key] = _cents(float(budget["amount"]))
        try:
            return AdapterResult.ok(await self._create("adsets", payload))
        except (PlatformApiError, ValueError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad_group(self, ad_group: AdGroup, platform_ad_group_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(platform_ad_group_id)
        payload: dict[str, Any] = {"name": ad_group.name, "status": map_status(ad_group.status)}
        targeting = (ad_group.settings or {}).get("targeting")
        if targeting:
            payload["targeting"] = targeting
        try:
            await self.client.post(f"/{platform_ad_group_id}", payload)
            return AdapterResult.ok(platform_ad_group_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad_group(self, platform_ad_group_id: str) -> None:
        await self._delete(platform_ad_group_id)

    # ── Ads ──

    async def create_ad(self, ad: Ad, platform_ad_group_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("ad", ad.id))
        if not ad.final_url:
            return AdapterResult(success=False, error="Ad finalUrl is required for Facebook ads")
        try:
            creative_id = await self._create("adcreatives", {
                "name": ad.headline or f"Creative {ad.id}",
                "object_story_spec": {
                    "link_data": {
                        "link": ad.final_url,
                        "message": ad.description or "",
                        "name": ad.headline or "",
                        "call_to_action": {"type": (ad.call_to_action or "LEARN_MORE").upper()},
                    },
                },
            })
            ad_id = await self._create("ads", {
                "name": ad.headline or f"Ad {ad.id}",
                "adset_id": platform_ad_group_id,
                "creative": {"creative_id": creative_id},
                "status": map_status(ad.status),
            })
            return AdapterResult.ok(ad_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad(self, ad: Ad, platform_ad_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(platform_ad_id)
        payload = {"status": map_status(ad.status)}
        if ad.headline:
            payload["name"] = ad.headline
        try:
            await self.client.post(f"/{platform_ad_id}", payload)
            return AdapterResult.ok(platform_ad_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad(self, platform_ad_id: str) -> None:
        await self._delete(platform_ad_id)

    # ── Keywords (targeting, no remote entity) ──

    async def create_keyword(self, keyword: Keyword, platform_ad_group_id: str) -> AdapterResult:
        return AdapterResult.ok(self._stub_id("targeting", keyword.id))

    async def update_keyword(self, keyword: Keyword, platform_keyword_id: str) -> AdapterResult:
        return AdapterResult.ok(platform_keyword_id)

    async def delete_keyword(self, platform_keyword_id: str) -> None:
        return None


def build_facebook_client(settings, transport=None) -> ApiClient:
    return ApiClient(
        settings.facebook_api_base,
        headers={"Authorization": f"Bearer {settings.facebook_access_token}"},
        platform="Facebook",
        transport=transport,
    )
