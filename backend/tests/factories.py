"""
Builders for in-memory campaign hierarchies used across the test suite.
"""

from campaignsync.schemas import Ad, AdGroup, Campaign, CampaignSet, Keyword


def make_ad(ad_id="ad-1", ad_group_id="ag-1", **overrides) -> Ad:
    fields = {
        "id": ad_id,
        "ad_group_id": ad_group_id,
        "headline": "Ship faster",
        "description": "Deploy in minutes",
        "final_url": "https://example.com/landing",
        "call_to_action": "LEARN_MORE",
    }
    fields.update(overrides)
    return Ad(**fields)


def make_keyword(keyword_id="kw-1", ad_group_id="ag-1", **overrides) -> Keyword:
    fields = {"id": keyword_id, "ad_group_id": ad_group_id, "keyword": "ci pipeline"}
    fields.update(overrides)
    return Keyword(**fields)


def make_ad_group(ad_group_id="ag-1", campaign_id="camp-1", ads=None, keywords=None, **overrides) -> AdGroup:
    fields = {
        "id": ad_group_id,
        "campaign_id": campaign_id,
        "name": f"Ad group {ad_group_id}",
        "settings": {"bidding": {"strategy": "automatic"}},
        "ads": ads if ads is not None else [make_ad(f"ad-{ad_group_id}", ad_group_id)],
        "keywords": keywords if keywords is not None else [],
    }
    fields.update(overrides)
    return AdGroup(**fields)


def make_campaign(campaign_id="camp-1", set_id="set-1", platform="reddit", ad_groups=None, **overrides) -> Campaign:
    fields = {
        "id": campaign_id,
        "campaign_set_id": set_id,
        "name": f"Campaign {campaign_id}",
        "platform": platform,
        "campaign_data": {"objective": "awareness", "special_ad_categories": ["NONE"]},
        "budget": {"type": "daily", "amount": 50.0},
        "ad_groups": ad_groups if ad_groups is not None else [make_ad_group(f"ag-{campaign_id}", campaign_id)],
    }
    fields.update(overrides)
    return Campaign(**fields)


def make_campaign_set(campaigns=None, set_id="set-1", **overrides) -> CampaignSet:
    fields = {
        "id": set_id,
        "user_id": "user-1",
        "name": "Launch",
        "status": "pending",
        "campaigns": campaigns if campaigns is not None else [make_campaign(set_id=set_id)],
    }
    fields.update(overrides)
    return CampaignSet(**fields)
