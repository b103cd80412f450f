"""
Adapter Registry — Builds the platform → adapter map from settings.
Reddit and Amazon are only registered when credentials are present; Google and
Facebook always register and fall back to test mode without credentials.
"""

import logging
from typing import Optional

import httpx

from campaignsync.adapters.amazon import AmazonAdsAdapter, AmazonAdsMCP
from campaignsync.adapters.base import PlatformAdapter, PlatformPoller
from campaignsync.adapters.facebook import FacebookAdsAdapter, build_facebook_client
from campaignsync.adapters.google import GoogleAdsAdapter, build_google_client
from campaignsync.adapters.reddit import RedditAdsAdapter, RedditPoller, build_reddit_client
from campaignsync.config import Settings, get_settings

logger = logging.getLogger(__name__)


def build_adapters(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, PlatformAdapter]:
    settings = settings or get_settings()
    adapters: dict[str, PlatformAdapter] = {}

    if settings.reddit_access_token and settings.reddit_account_id:
        client = build_reddit_client(settings.reddit_api_base, settings.reddit_access_token, transport)
        adapters["reddit"] = RedditAdsAdapter(
            client,
            settings.reddit_account_id,
            settings.reddit_funding_instrument_id or None,
        )

    google_client = None
    if settings.google_customer_id and settings.google_access_token:
        google_client = build_google_client(settings, transport)
    adapters["google"] = GoogleAdsAdapter(google_client, settings.google_customer_id or None)

    facebook_client = None
    if settings.facebook_access_token and settings.facebook_ad_account_id:
        facebook_client = build_facebook_client(settings, transport)
    adapters["facebook"] = FacebookAdsAdapter(facebook_client, settings.facebook_ad_account_id or None)

    if settings.amazon_client_id and settings.amazon_access_token:
        adapters["amazon"] = AmazonAdsAdapter(AmazonAdsMCP(
            client_id=settings.amazon_client_id,
            access_token=settings.amazon_access_token,
            region=settings.amazon_region,
            profile_id=settings.amazon_profile_id or None,
        ))

    logger.info(f"Platform adapters registered: {sorted(adapters)}")
    return adapters


def build_pollers(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, PlatformPoller]:
    settings = settings or get_settings()
    pollers: dict[str, PlatformPoller] = {}
    if settings.reddit_access_token and settings.reddit_account_id:
        client = build_reddit_client(settings.reddit_api_base, settings.reddit_access_token, transport)
        pollers["reddit"] = RedditPoller(client, settings.reddit_account_id)
    return pollers
