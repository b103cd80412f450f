"""
Amazon Ads Adapter — Sponsored Products through the Amazon Ads MCP Server.

Connects over the MCP Streamable HTTP transport and calls campaign_management-*
tools. Entities are created campaign → ad group → ad (ASIN) → target (keyword),
each step passing the platform id returned by the previous one.
"""

import json
import logging
from typing import Any, Optional

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from campaignsync.adapters.base import AdapterResult, PlatformAdapter, PlatformApiError
from campaignsync.schemas import Ad, AdGroup, Campaign, Keyword

logger = logging.getLogger(__name__)

# ── Region URL Mapping ────────────────────────────────────────────────
REGION_URLS = {
    "na": "https://advertising-ai.amazon.com/mcp",
    "eu": "https://advertising-ai-eu.amazon.com/mcp",
    "fe": "https://advertising-ai-fe.amazon.com/mcp",
}

_STATE = {"active": "enabled", "paused": "paused", "removed": "archived"}


class MCPError(PlatformApiError):
    """An MCP tool call failed or returned a validation error."""


def _extract_id(result: Any, keys: list[str]) -> Optional[str]:
    """Pull the created entity id out of an MCP response; Amazon nests it several ways."""
    if not isinstance(result, dict):
        return None
    id_keys = ("campaignId", "adGroupId", "adId", "targetId", "id")
    for key in keys:
        val = result.get(key)
        if isinstance(val, list) and val and isinstance(val[0], dict):
            for k in id_keys:
                if val[0].get(k):
                    return str(val[0][k])
        if isinstance(val, str):
            return val
    for succ in result.get("success", []) or []:
        if isinstance(succ, dict):
            for k in id_keys:
                if succ.get(k):
                    return str(succ[k])
    return None


class AmazonAdsMCP:
    """Thin wrapper around the Amazon Ads MCP Server, one session per tool call."""

    def __init__(
        self,
        client_id: str,
        access_token: str,
        region: str = "na",
        profile_id: Optional[str] = None,
    ):
        self.client_id = client_id
        self.access_token = access_token
        self.region = region.lower()
        self.profile_id = profile_id

    @property
    def url(self) -> str:
        url = REGION_URLS.get(self.region)
        if not url:
            raise ValueError(f"Unsupported region: {self.region}. Use na, eu, or fe.")
        return url

    @property
    def headers(self) -> dict[str, str]:
        h = {
            "Amazon-Ads-ClientId": self.client_id,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json, text/event-stream",
        }
        if self.profile_id:
            h["Amazon-Advertising-API-Scope"] = self.profile_id
            h["Amazon-Ads-AI-Account-Selection-Mode"] = "FIXED"
        return h

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] = None) -> dict:
        logger.info(f"MCP call: {tool_name} with args keys: {list((arguments or {}).keys())}")
        try:
            async with streamablehttp_client(url=self.url, headers=self.headers) as (
                read_stream,
                write_stream,
                _,
            ):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    result = await session.call_tool(tool_name, arguments or {})
                    return self._parse_result(result)
        except MCPError:
            raise
        except Exception as e:
            logger.error(f"MCP tool call failed: {tool_name} - {str(e)}")
            raise MCPError(f"Failed to call {tool_name}: {str(e)}", retryable=True) from e

    @staticmethod
    def _parse_result(result) -> dict:
        if getattr(result, "isError", False):
            texts = [getattr(p, "text", "") for p in getattr(result, "content", [])]
            raise MCPError(f"MCP tool error: {' '.join(texts)[:500]}")
        if hasattr(result, "content"):
            parts = [p.text if hasattr(p, "text") else getattr(p, "data", None) for p in result.content]
            if len(parts) == 1:
                try:
                    return json.loads(parts[0])
                except (json.JSONDecodeError, TypeError):
                    text = str(parts[0])
                    if "Validation failed" in text or "Validation error" in text:
                        raise MCPError(f"MCP validation error: {text[:500]}")
                    return {"result": text}
            return {"result": parts}
        return {"result": str(result)}

    async def campaign_tool(self, action: str, body: dict) -> dict:
        return await self.call_tool(f"campaign_management-{action}", {"body": body})


# ══════════════════════════════════════════════════════════════════════
#  ADAPTER
# ══════════════════════════════════════════════════════════════════════

class AmazonAdsAdapter(PlatformAdapter):
    platform = "amazon"

    def __init__(self, client: AmazonAdsMCP):
        self.client = client

    async def _create(self, action: str, list_key: str, payload: dict) -> str:
        result = await self.client.campaign_tool(action, {list_key: [payload]})
        entity_id = _extract_id(result, [list_key, "success"])
        if not entity_id:
            raise MCPError(f"{action} returned no id: {str(result)[:300]}")
        return entity_id

    async def _update(self, action: str, list_key: str, payload: dict) -> None:
        await self.client.campaign_tool(action, {list_key: [payload]})

    # ── Campaigns ──

    async def create_campaign(self, campaign: Campaign) -> AdapterResult:
        data = campaign.campaign_data or {}
        payload = {
            "name": campaign.name,
            "adProduct": data.get("ad_product", "SPONSORED_PRODUCTS"),
            "targetingType": data.get("targeting_type", "manual"),
            "state": "enabled",
            "dailyBudget": float(campaign.budget.amount) if campaign.budget else 50.0,
        }
        try:
            return AdapterResult.ok(await self._create("create_campaign", "campaigns", payload))
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_campaign(self, campaign: Campaign, platform_campaign_id: str) -> AdapterResult:
        payload: dict[str, Any] = {"campaignId": platform_campaign_id, "name": campaign.name}
        if campaign.budget:
            payload["dailyBudget"] = float(campaign.budget.amount)
        try:
            await self._update("update_campaign", "campaigns", payload)
            return AdapterResult.ok(platform_campaign_id)
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_campaign(self, platform_campaign_id: str) -> None:
        await self.client.campaign_tool("delete_campaign", {"campaignIds": [platform_campaign_id]})

    async def pause_campaign(self, platform_campaign_id: str) -> None:
        await self._update("update_campaign_state", "campaigns",
                           {"campaignId": platform_campaign_id, "state": "paused"})

    async def resume_campaign(self, platform_campaign_id: str) -> None:
        await self._update("update_campaign_state", "campaigns",
                           {"campaignId": platform_campaign_id, "state": "enabled"})

    # ── Ad groups ──

    async def create_ad_group(self, ad_group: AdGroup, platform_campaign_id: str) -> AdapterResult:
        payload: dict[str, Any] = {
            "campaignId": platform_campaign_id,
            "name": ad_group.name,
            "state": _STATE.get(ad_group.status, "enabled"),
        }
        bid = (ad_group.settings or {}).get("default_bid")
        if bid is not None:
            payload["defaultBid"] = float(bid)
        try:
            return AdapterResult.ok(await self._create("create_ad_group", "adGroups", payload))
        except (MCPError, ValueError) as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad_group(self, ad_group: AdGroup, platform_ad_group_id: str) -> AdapterResult:
        try:
            await self._update("update_ad_group", "adGroups", {
                "adGroupId": platform_ad_group_id,
                "name": ad_group.name,
                "state": _STATE.get(ad_group.status, "enabled"),
            })
            return AdapterResult.ok(platform_ad_group_id)
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad_group(self, platform_ad_group_id: str) -> None:
        await self.client.campaign_tool("delete_ad_group", {"adGroupIds": [platform_ad_group_id]})

    # ── Product ads ──

    async def create_ad(self, ad: Ad, platform_ad_group_id: str) -> AdapterResult:
        asin = (ad.assets.model_extra or {}).get("asin") if ad.assets else None
        if not asin:
            return AdapterResult(success=False, error="Ad asin is required for Amazon product ads")
        payload = {"adGroupId": platform_ad_group_id, "asin": asin, "state": _STATE.get(ad.status, "enabled")}
        if ad.headline:
            payload["name"] = ad.headline
        try:
            return AdapterResult.ok(await self._create("create_ad", "ads", payload))
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_ad(self, ad: Ad, platform_ad_id: str) -> AdapterResult:
        try:
            await self._update("update_ad", "ads", {"adId": platform_ad_id, "state": _STATE.get(ad.status, "enabled")})
            return AdapterResult.ok(platform_ad_id)
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_ad(self, platform_ad_id: str) -> None:
        await self.client.campaign_tool("delete_ad", {"adIds": [platform_ad_id]})

    # ── Keyword targets ──

    async def create_keyword(self, keyword: Keyword, platform_ad_group_id: str) -> AdapterResult:
        payload: dict[str, Any] = {
            "adGroupId": platform_ad_group_id,
            "expression": keyword.keyword,
            "expressionType": "keyword",
            "matchType": keyword.match_type,
            "state": _STATE.get(keyword.status, "enabled"),
            "bid": float(keyword.bid) if keyword.bid else 0.5,
        }
        try:
            return AdapterResult.ok(await self._create("create_target", "targets", payload))
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def update_keyword(self, keyword: Keyword, platform_keyword_id: str) -> AdapterResult:
        payload: dict[str, Any] = {"targetId": platform_keyword_id, "state": _STATE.get(keyword.status, "enabled")}
        if keyword.bid:
            payload["bid"] = float(keyword.bid)
        try:
            await self._update("update_target", "targets", payload)
            return AdapterResult.ok(platform_keyword_id)
        except MCPError as e:
            return AdapterResult.failed(e, self.platform)

    async def delete_keyword(self, platform_keyword_id: str) -> None:
        await self.client.campaign_tool("delete_target", {"targetIds": [platform_keyword_id]})
