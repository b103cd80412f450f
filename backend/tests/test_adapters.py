"""
Tests for the platform adapters, wire payloads and the adapter registry.
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from campaignsync.adapters.amazon import AmazonAdsAdapter, AmazonAdsMCP, MCPError
from campaignsync.adapters.base import ApiClient, PlatformApiError
from campaignsync.adapters.facebook import FacebookAdsAdapter
from campaignsync.adapters.google import GoogleAdsAdapter, parse_resource_name
from campaignsync.adapters.reddit import (
    RedditAdsAdapter,
    RedditPoller,
    build_reddit_client,
    extract_bid_micro,
    map_call_to_action,
)
from campaignsync.adapters.registry import build_adapters, build_pollers
from campaignsync.config import Settings

from factories import make_ad, make_ad_group, make_campaign, make_keyword


@pytest.fixture
def anyio_backend():
    return "asyncio"


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, suffix), response in self.routes.items():
            if request.method == method and request.url.path.endswith(suffix):
                return response(request) if callable(response) else response
        return httpx.Response(404, json={"error": "not found"})

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def _reddit(routes, funding_instrument_id="fi-1"):
    recorder = Recorder(routes)
    client = build_reddit_client("https://ads-api.reddit.com/api/v3", "token-1", httpx.MockTransport(recorder))
    return RedditAdsAdapter(client, "acct-1", funding_instrument_id), recorder


# ══════════════════════════════════════════════════════════════════════
#  REDDIT
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_reddit_create_campaign_payload():
    adapter, recorder = _reddit({
        ("POST", "/ad_accounts/acct-1/campaigns"): httpx.Response(200, json={"data": {"id": "t2_camp"}}),
    })

    result = await adapter.create_campaign(make_campaign("camp-1"))

    assert result.success is True
    assert result.platform_id == "t2_camp"
    request = recorder.requests[0]
    assert request.headers["Authorization"] == "Bearer token-1"
    assert recorder.body()["data"] == {
        "name": "Campaign camp-1",
        "objective": "IMPRESSIONS",
        "configured_status": "ACTIVE",
        "special_ad_categories": ["NONE"],
        "funding_instrument_id": "fi-1",
        "daily_budget_micro": 50_000_000,
    }


@pytest.mark.anyio
async def test_reddit_missing_objective_defaults_to_impressions():
    adapter, recorder = _reddit({
        ("POST", "/campaigns"): httpx.Response(200, json={"data": {"id": "t2_camp"}}),
    }, funding_instrument_id=None)

    await adapter.create_campaign(make_campaign("camp-1", campaign_data={}, budget={"type": "lifetime", "amount": 0.1}))

    body = recorder.body()["data"]
    assert body["objective"] == "IMPRESSIONS"
    assert body["total_budget_micro"] == 100_000
    assert "funding_instrument_id" not in body


@pytest.mark.anyio
async def test_reddit_rate_limit_is_retryable_failure():
    adapter, _ = _reddit({
        ("POST", "/campaigns"): httpx.Response(429, headers={"Retry-After": "7"}, json={"error": "slow down"}),
    })

    result = await adapter.create_campaign(make_campaign("camp-1"))

    assert result.success is False
    assert result.retryable is True
    assert result.retry_after == 7.0
    assert result.error.startswith("Reddit API error 429")


@pytest.mark.anyio
async def test_reddit_client_error_is_not_retryable():
    adapter, _ = _reddit({
        ("POST", "/ad_groups"): httpx.Response(400, json={"error": "bad bid"}),
    })
    result = await adapter.create_ad_group(make_ad_group(), "t2_camp")
    assert result.success is False
    assert result.retryable is False


@pytest.mark.anyio
async def test_reddit_ad_group_payload_uses_bid_and_goal():
    adapter, recorder = _reddit({
        ("POST", "/ad_groups"): httpx.Response(200, json={"data": {"id": "t2_ag"}}),
    })
    settings = {
        "bidding": {"strategy": "manual_cpm", "max_cpc": "-1", "max_cpm": 2.5},
        "budget": {"type": "lifetime", "amount": 100},
        "targeting": {"subreddits": ["python"], "devices": ["desktop"]},
    }

    await adapter.create_ad_group(make_ad_group(settings=settings), "t2_camp")

    body = recorder.body()["data"]
    assert body["campaign_id"] == "t2_camp"
    assert body["bid_strategy"] == "MANUAL_BIDDING"
    assert body["bid_type"] == "CPM"
    assert body["bid_value"] == 2_500_000
    assert body["goal_type"] == "LIFETIME_SPEND"
    assert body["targeting"] == {"subreddits": ["python"], "devices": [{"type": "desktop"}]}


@pytest.mark.anyio
async def test_reddit_ad_requires_final_url():
    adapter, recorder = _reddit({})
    result = await adapter.create_ad(make_ad(final_url=None), "t2_ag")
    assert result.success is False
    assert "finalUrl" in result.error
    assert recorder.requests == []


@pytest.mark.anyio
async def test_reddit_keywords_are_local_noops():
    adapter, recorder = _reddit({})
    result = await adapter.create_keyword(make_keyword("kw-1"), "t2_ag")
    assert result.platform_id == "kw-1"
    assert recorder.requests == []


@pytest.mark.anyio
async def test_reddit_pause_patches_configured_status():
    adapter, recorder = _reddit({("PATCH", "/campaigns/t2_camp"): httpx.Response(200, json={})})
    await adapter.pause_campaign("t2_camp")
    assert recorder.body() == {"data": {"configured_status": "PAUSED"}}


@pytest.mark.anyio
async def test_reddit_delete_raises_on_failure():
    adapter, _ = _reddit({("DELETE", "/campaigns/t2_camp"): httpx.Response(503)})
    with pytest.raises(PlatformApiError) as exc_info:
        await adapter.delete_campaign("t2_camp")
    assert exc_info.value.retryable is True


def test_reddit_field_mapping():
    assert map_call_to_action("sign-up") == "SIGN_UP"
    assert map_call_to_action("CLICK_HERE") == "LEARN_MORE"
    assert extract_bid_micro({"bidding": {"max_cpc": "1.25"}}) == 1_250_000
    assert extract_bid_micro({"bidding": {"max_cpc": 0}}) is None
    assert extract_bid_micro(None) is None


@pytest.mark.anyio
async def test_reddit_poller_missing_campaign_returns_none():
    recorder = Recorder({("GET", "/campaigns/t2_gone"): httpx.Response(404, json={"error": "gone"})})
    client = build_reddit_client("https://ads-api.reddit.com/api/v3", "token-1", httpx.MockTransport(recorder))
    assert await RedditPoller(client, "acct-1").get_campaign_status("t2_gone") is None


@pytest.mark.anyio
async def test_reddit_poller_lists_statuses():
    recorder = Recorder({("GET", "/ad_accounts/acct-1/campaigns"): httpx.Response(200, json={"data": [
        {"id": "t2_a", "configured_status": "PAUSED", "daily_budget_micro": 25_000_000,
         "updated_at": "2026-03-01T12:00:00+02:00"},
        {"id": "t2_b", "status": "ARCHIVED", "total_budget_micro": 1_000_000},
    ]})})
    client = build_reddit_client("https://ads-api.reddit.com/api/v3", "token-1", httpx.MockTransport(recorder))

    statuses = await RedditPoller(client, "acct-1").list_campaign_statuses()

    assert [s.status for s in statuses] == ["paused", "error"]
    assert statuses[0].budget.amount == 25.0
    assert statuses[0].last_modified.hour == 10
    assert statuses[1].budget.type == "lifetime"


# ══════════════════════════════════════════════════════════════════════
#  GOOGLE
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_google_test_mode_returns_stub_ids():
    adapter = GoogleAdsAdapter()
    assert adapter.test_mode is True
    result = await adapter.create_campaign(make_campaign("camp-1"))
    assert result.platform_id.startswith("google_campaign_camp-1_")


@pytest.mark.anyio
async def test_google_create_campaign_creates_budget_first():
    def mutate(request: httpx.Request) -> httpx.Response:
        kind = request.url.path.rsplit("/", 1)[-1].split(":")[0]
        return httpx.Response(200, json={"results": [{"resourceName": f"customers/1234567890/{kind}/99"}]})

    recorder = Recorder({("POST", ":mutate"): mutate})
    client = ApiClient("https://googleads.googleapis.com/v17", transport=httpx.MockTransport(recorder))
    adapter = GoogleAdsAdapter(client, "123-456-7890")

    result = await adapter.create_campaign(make_campaign("camp-1"))

    assert result.platform_id == "customers/1234567890/campaigns/99"
    assert recorder.requests[0].url.path.endswith("/customers/1234567890/campaignBudgets:mutate")
    assert recorder.body(0)["operations"][0]["create"]["amountMicros"] == "50000000"
    campaign_op = recorder.body(1)["operations"][0]["create"]
    assert campaign_op["campaignBudget"] == "customers/1234567890/campaignBudgets/99"
    assert campaign_op["status"] == "PAUSED"


@pytest.mark.anyio
async def test_google_mutate_without_resource_name_fails():
    recorder = Recorder({("POST", ":mutate"): httpx.Response(200, json={"results": []})})
    client = ApiClient("https://googleads.googleapis.com/v17", transport=httpx.MockTransport(recorder))
    result = await GoogleAdsAdapter(client, "1234567890").create_ad_group(make_ad_group(), "customers/1/campaigns/2")
    assert result.success is False
    assert "no resource name" in result.error


@pytest.mark.anyio
async def test_google_ads_are_immutable():
    result = await GoogleAdsAdapter().update_ad(make_ad(), "customers/1/adGroupAds/2~3")
    assert result.success is False
    assert "immutable" in result.error


@pytest.mark.anyio
async def test_google_delete_ad_rejects_bad_resource_name():
    client = ApiClient("https://googleads.googleapis.com/v17", transport=httpx.MockTransport(Recorder({})))
    with pytest.raises(PlatformApiError, match="Invalid AdGroupAd resource name"):
        await GoogleAdsAdapter(client, "1234567890").delete_ad("customers/1/adGroupAds/3")


def test_parse_resource_name():
    assert parse_resource_name("customers/1/adGroupCriteria/2~3") == {
        "customer_id": "1", "kind": "adGroupCriteria", "entity_id": "2~3",
    }
    assert parse_resource_name("campaigns/1") is None


# ══════════════════════════════════════════════════════════════════════
#  FACEBOOK
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_facebook_ad_creates_creative_then_ad():
    recorder = Recorder({
        ("POST", "/act_42/adcreatives"): httpx.Response(200, json={"id": "cr-1"}),
        ("POST", "/act_42/ads"): httpx.Response(200, json={"id": "ad-9"}),
    })
    client = ApiClient("https://graph.facebook.com/v19.0", transport=httpx.MockTransport(recorder))
    adapter = FacebookAdsAdapter(client, "42")

    result = await adapter.create_ad(make_ad(), "adset-1")

    assert result.platform_id == "ad-9"
    assert recorder.body(0)["object_story_spec"]["link_data"]["link"] == "https://example.com/landing"
    assert recorder.body(1)["creative"] == {"creative_id": "cr-1"}
    assert recorder.body(1)["adset_id"] == "adset-1"


@pytest.mark.anyio
async def test_facebook_campaign_budget_in_cents():
    recorder = Recorder({("POST", "/act_42/campaigns"): httpx.Response(200, json={"id": "c-1"})})
    client = ApiClient("https://graph.facebook.com/v19.0", transport=httpx.MockTransport(recorder))

    await FacebookAdsAdapter(client, "act_42").create_campaign(make_campaign("camp-1"))

    body = recorder.body()
    assert body["daily_budget"] == 5_000
    assert body["objective"] == "OUTCOME_AWARENESS"


@pytest.mark.anyio
async def test_facebook_test_mode():
    adapter = FacebookAdsAdapter()
    assert adapter.test_mode is True
    result = await adapter.create_ad_group(make_ad_group("ag-1"), "fb_campaign")
    assert result.platform_id.startswith("fb_adset_ag-1_")


# ══════════════════════════════════════════════════════════════════════
#  AMAZON
# ══════════════════════════════════════════════════════════════════════

def _amazon(response=None, side_effect=None):
    mcp = AmazonAdsMCP(client_id="client-1", access_token="token-1", profile_id="profile-1")
    mcp.call_tool = AsyncMock(return_value=response, side_effect=side_effect)
    return AmazonAdsAdapter(mcp), mcp


@pytest.mark.anyio
async def test_amazon_create_campaign_extracts_id():
    adapter, mcp = _amazon({"campaigns": [{"campaignId": "A-1"}]})

    result = await adapter.create_campaign(make_campaign("camp-1"))

    assert result.platform_id == "A-1"
    tool, args = mcp.call_tool.await_args.args
    assert tool == "campaign_management-create_campaign"
    assert args["body"]["campaigns"][0]["dailyBudget"] == 50.0


@pytest.mark.anyio
async def test_amazon_id_from_success_list():
    adapter, _ = _amazon({"success": [{"targetId": "T-7"}]})
    result = await adapter.create_keyword(make_keyword(), "AG-1")
    assert result.platform_id == "T-7"


@pytest.mark.anyio
async def test_amazon_ad_requires_asin():
    adapter, mcp = _amazon({})
    result = await adapter.create_ad(make_ad(), "AG-1")
    assert result.success is False
    mcp.call_tool.assert_not_awaited()

    adapter, _ = _amazon({"ads": [{"adId": "AD-1"}]})
    result = await adapter.create_ad(make_ad(assets={"asin": "B000123"}), "AG-1")
    assert result.platform_id == "AD-1"


@pytest.mark.anyio
async def test_amazon_tool_failure_is_retryable():
    adapter, _ = _amazon(side_effect=MCPError("Failed to call campaign_management-create_campaign", retryable=True))
    result = await adapter.create_campaign(make_campaign("camp-1"))
    assert result.success is False
    assert result.retryable is True


def test_amazon_mcp_headers_and_region():
    mcp = AmazonAdsMCP(client_id="client-1", access_token="token-1", region="EU", profile_id="profile-1")
    assert mcp.url == "https://advertising-ai-eu.amazon.com/mcp"
    assert mcp.headers["Amazon-Advertising-API-Scope"] == "profile-1"
    with pytest.raises(ValueError):
        AmazonAdsMCP(client_id="c", access_token="t", region="mars").url


def test_amazon_mcp_error_result_raises():
    result = MagicMock(isError=True, content=[MagicMock(text="campaign name already exists")])
    with pytest.raises(MCPError, match="already exists"):
        AmazonAdsMCP._parse_result(result)


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

def test_registry_without_credentials():
    settings = Settings(reddit_access_token="", reddit_account_id="", amazon_client_id="", amazon_access_token="",
                        google_customer_id="", facebook_access_token="")
    adapters = build_adapters(settings)
    assert sorted(adapters) == ["facebook", "google"]
    assert adapters["google"].test_mode is True
    assert build_pollers(settings) == {}


def test_registry_with_reddit_and_amazon_credentials():
    settings = Settings(
        reddit_access_token="token", reddit_account_id="acct-1",
        amazon_client_id="client", amazon_access_token="token",
    )
    adapters = build_adapters(settings)
    assert {"reddit", "amazon"} <= set(adapters)
    assert isinstance(build_pollers(settings)["reddit"], RedditPoller)
