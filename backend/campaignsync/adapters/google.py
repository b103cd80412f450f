"""
Google Ads Adapter — Google Ads REST API (googleads.googleapis.com).

Every write is a `:mutate` call with a single create/update/remove operation.
Platform ids are resource names: customers/{cid}/campaigns/{id},
customers/{cid}/adGroups/{id}, customers/{cid}/adGroupAds/{adGroupId}~{adId},
customers/{cid}/adGroupCriteria/{adGroupId}~{criterionId}.

Without a customer id the adapter runs in test mode and returns stub ids.
"""

import logging
import re
from typing import Any, Optional

from campaignsync.adapters.base import (
    AdapterResult,
    ApiClient,
    PlatformAdapter,
    PlatformApiError,
    StubIdMixin,
)
from campaignsync.schemas import Ad, AdGroup, Campaign, Keyword
from campaignsync.utils import to_micro_units

logger = logging.getLogger(__name__)

DEFAULT_DAILY_BUDGET = 10.0

_RESOURCE_NAME_RE = re.compile(r"^customers/(?P<customer_id>[^/]+)/(?P<kind>[^/]+)/(?P<entity_id>[^/]+)$")

_STATUS_TO_GOOGLE = {
    "active": "ENABLED",
    "pending": "PAUSED",
    "draft": "PAUSED",
    "paused": "PAUSED",
    "completed": "PAUSED",
    "error": "PAUSED",
    "removed": "REMOVED",
}


def parse_resource_name(resource_name: str) -> Optional[dict]:
    match = _RESOURCE_NAME_RE.match(resource_name or "")
    return match.groupdict() if match else None


def map_status_to_google(status: Optional[str]) -> str:
    return _STATUS_TO_GOOGLE.get((status or "").lower(), "PAUSED")


class GoogleAdsAdapter(StubIdMixin, PlatformAdapter):
    platform = "google"
    id_prefix = "google"

    def __init__(self, client: Optional[ApiClient] = None, customer_id: Optional[str] = None):
        self.client = client
        self.customer_id = (customer_id or "").replace("-", "") or None
        self.test_mode = client is None or self.customer_id is None
        if self.test_mode:
            logger.info("Google Ads adapter running in test mode (no customer id configured)")

    async def _mutate(self, customer_id: str, kind: str, operation: dict) -> str:
        response = await self.client.post(
            f"/customers/{customer_id}/{kind}:mutate",
            {"operations": [operation]},
        )
        results = response.get("results") or []
        if not results or not results[0].get("resourceName"):
            raise PlatformApiError(f"Google Ads {kind} mutate returned no resource name", details=response)
        return results[0]["resourceName"]

    def _parse(self, platform_id: str, label: str) -> dict:
        parsed = parse_resource_name(platform_id)
        if not parsed:
            raise PlatformApiError(f"Invalid platform {label} ID: {platform_id}")
        return parsed

    # ── Campaigns ──

    async def create_campaign(self, campaign: Campaign) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("campaign", campaign.id))
        try:
            amount = campaign.budget.amount if campaign.budget else DEFAULT_DAILY_BUDGET
            budget_resource = await self._mutate(self.customer_id, "campaignBudgets", {
                "create": {
                    "name": f"{campaign.name} Budget",
                    "amountMicros": str(to_micro_units(amount)),
                    "deliveryMethod": "STANDARD",
                },
            })
            data = campaign.campaign_data or {}
            resource = await self._mutate(self.customer_id, "campaigns", {
                "create": {
                    "name": campaign.name,
                    "status": "PAUSED",
                    "advertisingChannelType": data.get("advertising_channel_type", "SEARCH"),
                    "campaignBudget": budget_resource,
                    "manualCpc": {},
                },
            })
            return AdapterResult.ok(resource)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_campaign(self, campaign: Campaign, platform_campaign_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(platform_campaign_id)
        try:
            parsed = self._parse(platform_campaign_id, "campaign")
            await self._mutate(parsed["customer_id"], "campaigns", {
                "update": {
                    "resourceName": platform_campaign_id,
                    "name": campaign.name,
                    "status": map_status_to_google(campaign.status),
                },
                "updateMask": "name,status",
            })
            return AdapterResult.ok(platform_campaign_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def _set_status(self, platform_id: str, kind: str, status: str) -> None:
        if self.test_mode:
            return
        parsed = self._parse(platform_id, kind)
        await self._mutate(parsed["customer_id"], kind, {
            "update": {"resourceName": platform_id, "status": status},
            "updateMask": "status",
        })

    async def _remove(self, platform_id: str, kind: str) -> None:
        if self.test_mode:
            return
        parsed = self._parse(platform_id, kind)
        await self._mutate(parsed["customer_id"], kind, {"remove": platform_id})

    async def delete_campaign(self, platform_campaign_id: str) -> None:
        # Google has no hard delete; remove sets status REMOVED
        await self._remove(platform_campaign_id, "campaigns")

    async def pause_campaign(self, platform_campaign_id: str) -> None:
        await self._set_status(platform_campaign_id, "campaigns", "PAUSED")

    async def resume_campaign(self, platform_campaign_id: str) -> None:
        await self._set_status(platform_campaign_id, "campaigns", "ENABLED")

    # ── Ad groups ──

    async def create_ad_group(self, ad_group: AdGroup, platform_campaign_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("adgroup", ad_group.id))
        try:
            payload: dict[str, Any] = {
                "name": ad_group.name,
                "campaign": platform_campaign_id,
                "status": map_status_to_google(ad_group.status),
                "type": "SEARCH_STANDARD",
            }
            max_cpc = ((ad_group.settings or {}).get("bidding") or {}).get("max_cpc")
            if max_cpc:
                payload["cpcBidMicros"] = str(to_micro_units(float(max_cpc)))
            resource = await self._mutate(self.customer_id, "adGroups", {"create": payload})
            return AdapterResult.ok(resource)
        except (PlatformApiError, ValueError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad_group(self, ad_group: AdGroup, platform_ad_group_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(platform_ad_group_id)
        try:
            parsed = self._parse(platform_ad_group_id, "ad group")
            await self._mutate(parsed["customer_id"], "adGroups", {
                "update": {
                    "resourceName": platform_ad_group_id,
                    "name": ad_group.name,
                    "status": map_status_to_google(ad_group.status),
                },
                "updateMask": "name,status",
            })
            return AdapterResult.ok(platform_ad_group_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad_group(self, platform_ad_group_id: str) -> None:
        await self._remove(platform_ad_group_id, "adGroups")

    # ── Ads (responsive search ads) ──

    async def create_ad(self, ad: Ad, platform_ad_group_id: str) -> AdapterResult:
        if not ad.final_url:
            return AdapterResult(success=False, error="Ad finalUrl is required for Google Ads RSAs")
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("ad", ad.id))

        extra = ad.assets.model_extra if ad.assets and ad.assets.model_extra else {}
        headlines = [h for h in [ad.headline, *extra.get("headlines", [])] if h]
        descriptions = [d for d in [ad.description, *extra.get("descriptions", [])] if d]
        try:
            resource = await self._mutate(self.customer_id, "adGroupAds", {
                "create": {
                    "adGroup": platform_ad_group_id,
                    "status": map_status_to_google(ad.status),
                    "ad": {
                        "finalUrls": [ad.final_url],
                        "responsiveSearchAd": {
                            "headlines": [{"text": h[:30]} for h in headlines],
                            "descriptions": [{"text": d[:90]} for d in descriptions],
                        },
                    },
                },
            })
            return AdapterResult.ok(resource)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad(self, ad: Ad, platform_ad_id: str) -> AdapterResult:
        return AdapterResult(
            success=False,
            error="Google Ads RSAs are immutable. To modify an ad, remove the existing ad "
                  "and create a new one with the updated content.",
        )

    async def delete_ad(self, platform_ad_id: str) -> None:
        if self.test_mode:
            return
        parsed = self._parse(platform_ad_id, "ad")
        if "~" not in parsed["entity_id"]:
            raise PlatformApiError(f"Invalid AdGroupAd resource name: {platform_ad_id}")
        await self._mutate(parsed["customer_id"], "adGroupAds", {"remove": platform_ad_id})

    # ── Keywords ──

    async def create_keyword(self, keyword: Keyword, platform_ad_group_id: str) -> AdapterResult:
        if self.test_mode:
            return AdapterResult.ok(self._stub_id("keyword", keyword.id))
        payload: dict[str, Any] = {
            "adGroup": platform_ad_group_id,
            "status": map_status_to_google(keyword.status),
            "keyword": {"text": keyword.keyword, "matchType": keyword.match_type.upper()},
        }
        if keyword.bid:
            payload["cpcBidMicros"] = str(to_micro_units(keyword.bid))
        try:
            resource = await self._mutate(self.customer_id, "adGroupCriteria", {"create": payload})
            return AdapterResult.ok(resource)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_keyword(self, keyword: Keyword, platform_keyword_id: str) -> AdapterResult:
        """Only status and CPC bid are mutable on a keyword criterion."""
        if self.test_mode:
            return AdapterResult.ok(platform_keyword_id)
        update: dict[str, Any] = {
            "resourceName": platform_keyword_id,
            "status": map_status_to_google(keyword.status),
        }
        mask = ["status"]
        if keyword.bid:
            update["cpcBidMicros"] = str(to_micro_units(keyword.bid))
            mask.append("cpc_bid_micros")
        try:
            parsed = self._parse(platform_keyword_id, "keyword")
            await self._mutate(parsed["customer_id"], "adGroupCriteria", {
                "update": update,
                "updateMask": ",".join(mask),
            })
            return AdapterResult.ok(platform_keyword_id)
        except PlatformApiError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_keyword(self, platform_keyword_id: str) -> None:
        await self._remove(platform_keyword_id, "adGroupCriteria")


def build_google_client(settings, transport=None) -> ApiClient:
    headers = {
        "Authorization": f"Bearer {settings.google_access_token}",
        "developer-token": settings.google_developer_token,
        "Content-Type": "application/json",
    }
    return ApiClient(settings.google_api_base, headers=headers, platform="Google Ads", transport=transport)
