"""
Entity Validators — Pre-flight field checks for campaigns, ad groups, ads and keywords.

Every "required" check first asks the PlatformDefaultsResolver whether the target
platform fills the field in itself. Without a platform context nothing is defaulted
and every required field is enforced.
"""

import enum
import re
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

from campaignsync.schemas import Ad, AdGroup, Campaign, Keyword
from campaignsync.services.platform_defaults import PlatformDefaultsResolver


class ValidationErrorCode(str, enum.Enum):
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_ENUM_VALUE = "INVALID_ENUM_VALUE"
    VALUE_OUT_OF_RANGE = "VALUE_OUT_OF_RANGE"
    INVALID_BUDGET = "INVALID_BUDGET"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    INVALID_FORMAT = "INVALID_FORMAT"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"


class ValidationError(BaseModel):
    entity_type: str
    entity_id: str
    entity_name: str
    field: str
    code: ValidationErrorCode
    message: str
    value: Any = None
    expected: Optional[str] = None


# ── Allowed values (Reddit v3 is the strictest platform we target) ────

VALID_OBJECTIVES = (
    "APP_INSTALLS", "CATALOG_SALES", "CLICKS", "CONVERSIONS",
    "IMPRESSIONS", "LEAD_GENERATION", "VIDEO_VIEWABLE_IMPRESSIONS",
)
VALID_SPECIAL_AD_CATEGORIES = ("NONE", "HOUSING", "EMPLOYMENT", "CREDIT", "HOUSING_EMPLOYMENT_CREDIT")
VALID_CONFIGURED_STATUS = ("ACTIVE", "PAUSED")
VALID_GOAL_TYPES = ("DAILY_SPEND", "LIFETIME_SPEND")
VALID_BUDGET_TYPES = ("daily", "lifetime", "shared")
VALID_BID_STRATEGIES = ("BIDLESS", "MANUAL_BIDDING", "MAXIMIZE_VOLUME", "TARGET_CPX")
VALID_BID_TYPES = ("CPC", "CPM", "CPV")
VALID_CALLS_TO_ACTION = (
    "LEARN_MORE", "SIGN_UP", "SHOP_NOW", "DOWNLOAD", "INSTALL", "GET_QUOTE",
    "CONTACT_US", "BOOK_NOW", "APPLY_NOW", "WATCH_MORE", "GET_STARTED",
    "SUBSCRIBE", "ORDER_NOW", "SEE_MORE", "VIEW_MORE", "PLAY_NOW",
)
VALID_MATCH_TYPES = ("broad", "phrase", "exact")

MAX_NAME_LENGTH = 255
MAX_HEADLINE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_DISPLAY_URL_LENGTH = 25
MAX_KEYWORD_LENGTH = 80

_ISO_8601 = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,3})?(Z|[+-]\d{2}:\d{2})$")

OBJECTIVE_ALIASES = {
    "awareness": "IMPRESSIONS",
    "impressions": "IMPRESSIONS",
    "consideration": "CLICKS",
    "clicks": "CLICKS",
    "traffic": "CLICKS",
    "conversions": "CONVERSIONS",
    "video_views": "VIDEO_VIEWABLE_IMPRESSIONS",
    "video": "VIDEO_VIEWABLE_IMPRESSIONS",
    "app_installs": "APP_INSTALLS",
    "lead_generation": "LEAD_GENERATION",
    "leads": "LEAD_GENERATION",
    "catalog_sales": "CATALOG_SALES",
}

BID_STRATEGY_ALIASES = {
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


def normalize_objective(objective: str) -> str:
    return OBJECTIVE_ALIASES.get(objective.lower(), objective.upper())


def normalize_bid_strategy(strategy: str) -> str:
    return BID_STRATEGY_ALIASES.get(strategy.lower(), strategy.upper())


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class _EntityChecks:
    """Error-building helpers bound to a single entity."""

    def __init__(self, entity_type: str, entity_id: str, entity_name: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.entity_name = entity_name
        self.errors: list[ValidationError] = []

    def add(self, field: str, code: ValidationErrorCode, message: str, value=None, expected: str = None):
        self.errors.append(ValidationError(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            field=field,
            code=code,
            message=message,
            value=value,
            expected=expected,
        ))

    def required_string(self, value, field: str, max_length: int = None) -> bool:
        if _is_blank(value):
            self.add(field, ValidationErrorCode.REQUIRED_FIELD, f"{field} is required", value)
            return False
        if max_length is not None and len(value) > max_length:
            self.add(field, ValidationErrorCode.CONSTRAINT_VIOLATION,
                     f"{field} must be at most {max_length} characters (got {len(value)})",
                     value, f"<= {max_length} characters")
            return False
        return True

    def max_length(self, value, field: str, max_length: int) -> None:
        if value is not None and len(value) > max_length:
            self.add(field, ValidationErrorCode.CONSTRAINT_VIOLATION,
                     f"{field} must be at most {max_length} characters (got {len(value)})",
                     value, f"<= {max_length} characters")

    def enum_value(self, value, field: str, allowed: tuple) -> None:
        if value not in allowed:
            self.add(field, ValidationErrorCode.INVALID_ENUM_VALUE,
                     f"{field} must be one of: {', '.join(allowed)} (got \"{value}\")",
                     value, " | ".join(allowed))

    def datetime_field(self, value, field: str) -> Optional[datetime]:
        if value is None or value == "":
            return None
        if not isinstance(value, str) or not _ISO_8601.match(value):
            self.add(field, ValidationErrorCode.INVALID_FORMAT,
                     f"{field} must be an ISO 8601 datetime with timezone",
                     value, "YYYY-MM-DDTHH:MM:SSZ")
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN
# ══════════════════════════════════════════════════════════════════════

class CampaignValidator:
    def __init__(self, defaults: PlatformDefaultsResolver = None):
        self.defaults = defaults or PlatformDefaultsResolver()

    def validate(self, campaign: Campaign, platform: Optional[str] = None) -> list[ValidationError]:
        checks = _EntityChecks("campaign", campaign.id, campaign.name or f"Campaign {campaign.id}")
        data = campaign.campaign_data or {}

        checks.required_string(campaign.name, "name", MAX_NAME_LENGTH)

        objective = data.get("objective")
        if _is_blank(objective):
            if not self._defaulted(platform, "objective"):
                checks.add("objective", ValidationErrorCode.REQUIRED_FIELD, "objective is required", objective)
        elif normalize_objective(str(objective)) not in VALID_OBJECTIVES:
            checks.enum_value(objective, "objective", VALID_OBJECTIVES)

        configured_status = data.get("configured_status")
        if configured_status is not None:
            checks.enum_value(configured_status, "configured_status", VALID_CONFIGURED_STATUS)

        advanced = ((data.get("advanced_settings") or {}).get("reddit") or {}).get("campaign") or {}
        categories = advanced.get("special_ad_categories", data.get("special_ad_categories"))
        if categories and not isinstance(categories, list):
            categories = [categories]
        if not categories:
            if not self._defaulted(platform, "special_ad_categories"):
                checks.add("special_ad_categories", ValidationErrorCode.REQUIRED_FIELD,
                           'special_ad_categories is required (use ["NONE"] for non-restricted campaigns)',
                           categories, '["NONE"] or a valid category array')
        else:
            for category in categories:
                checks.enum_value(category, "special_ad_categories", VALID_SPECIAL_AD_CATEGORIES)

        if campaign.budget is not None:
            if campaign.budget.amount <= 0:
                checks.add("budget.amount", ValidationErrorCode.INVALID_BUDGET,
                           "budget amount must be a positive number",
                           campaign.budget.amount, "A positive number")
            if campaign.budget.type not in VALID_BUDGET_TYPES:
                checks.add("budget.type", ValidationErrorCode.INVALID_BUDGET,
                           f"budget type must be one of: {', '.join(VALID_BUDGET_TYPES)}",
                           campaign.budget.type, " | ".join(VALID_BUDGET_TYPES))

        goal_type = data.get("goal_type")
        if goal_type is not None:
            checks.enum_value(goal_type, "goal_type", VALID_GOAL_TYPES)
            goal_value = data.get("goal_value")
            if goal_value is None:
                checks.add("goal_value", ValidationErrorCode.REQUIRED_FIELD,
                           "goal_value is required when goal_type is set", goal_value)
            elif isinstance(goal_value, (int, float)) and goal_value <= 0:
                checks.add("goal_value", ValidationErrorCode.VALUE_OUT_OF_RANGE,
                           "goal_value must be a positive number", goal_value,
                           "A positive number (micro-units)")

        return checks.errors

    def _defaulted(self, platform: Optional[str], field: str) -> bool:
        return bool(platform) and self.defaults.has_default(platform, "campaign", field)


# ══════════════════════════════════════════════════════════════════════
#  AD GROUP
# ══════════════════════════════════════════════════════════════════════

class AdGroupValidator:
    def __init__(self, defaults: PlatformDefaultsResolver = None):
        self.defaults = defaults or PlatformDefaultsResolver()

    def validate(
        self,
        ad_group: AdGroup,
        platform: Optional[str] = None,
        valid_campaign_ids: Optional[set[str]] = None,
    ) -> list[ValidationError]:
        checks = _EntityChecks("ad_group", ad_group.id, ad_group.name or f"Ad Group {ad_group.id}")
        settings = ad_group.settings or {}
        bidding = settings.get("bidding") or None
        budget = settings.get("budget") or None

        checks.required_string(ad_group.name, "name", MAX_NAME_LENGTH)

        if valid_campaign_ids is not None and ad_group.campaign_id not in valid_campaign_ids:
            checks.add("campaign_id", ValidationErrorCode.MISSING_DEPENDENCY,
                       f'Ad group references campaign "{ad_group.campaign_id}" which does not exist in this sync',
                       ad_group.campaign_id)

        strategy = normalize_bid_strategy(bidding["strategy"]) if bidding and bidding.get("strategy") else None
        if strategy is None:
            if not self._defaulted(platform, "bid_strategy"):
                checks.add("bid_strategy", ValidationErrorCode.REQUIRED_FIELD, "bid_strategy is required")
        else:
            checks.enum_value(strategy, "bid_strategy", VALID_BID_STRATEGIES)

        bid_type = self._bid_type(bidding)
        if bid_type is None:
            if not self._defaulted(platform, "bid_type"):
                checks.add("bid_type", ValidationErrorCode.REQUIRED_FIELD, "bid_type is required")
        else:
            checks.enum_value(bid_type, "bid_type", VALID_BID_TYPES)

        if strategy in ("MANUAL_BIDDING", "TARGET_CPX"):
            bid_value = self._bid_value(bidding)
            if bid_value is None:
                checks.add("bid_value", ValidationErrorCode.REQUIRED_FIELD,
                           f"bid_value is required when bid_strategy is {strategy}")
            elif bid_value <= 0:
                checks.add("bid_value", ValidationErrorCode.VALUE_OUT_OF_RANGE,
                           "bid_value must be a positive number", bid_value, "A positive number")

        advanced = ((settings.get("advanced_settings") or {}).get("reddit") or {}).get("ad_group") or {}
        start = checks.datetime_field(advanced.get("start_time"), "start_time")
        end = checks.datetime_field(advanced.get("end_time"), "end_time")
        if start and end and end <= start:
            checks.add("end_time", ValidationErrorCode.CONSTRAINT_VIOLATION,
                       "end_time must be after start_time", advanced.get("end_time"))

        if budget:
            amount = _parse_float(budget.get("amount"))
            if budget.get("amount") is not None and (amount is None or amount <= 0):
                checks.add("goal_value", ValidationErrorCode.VALUE_OUT_OF_RANGE,
                           "goal_value (budget amount) must be a positive number",
                           budget.get("amount"), "A positive number")

        return checks.errors

    def _defaulted(self, platform: Optional[str], field: str) -> bool:
        return bool(platform) and self.defaults.has_default(platform, "ad_group", field)

    @staticmethod
    def _bid_type(bidding: Optional[dict]) -> Optional[str]:
        if not bidding:
            return None
        if bidding.get("bid_type"):
            return str(bidding["bid_type"]).upper()
        strategy = str(bidding.get("strategy") or "").lower()
        if strategy in ("manual_cpm", "cpm"):
            return "CPM"
        if strategy in ("cpv", "video"):
            return "CPV"
        return "CPC"

    @staticmethod
    def _bid_value(bidding: Optional[dict]) -> Optional[float]:
        if not bidding:
            return None
        for key in ("bid_value", "max_cpc", "max_cpm"):
            if bidding.get(key) is not None:
                value = _parse_float(bidding[key])
                if value is not None:
                    return value
        return None


# ══════════════════════════════════════════════════════════════════════
#  AD / KEYWORD
# ══════════════════════════════════════════════════════════════════════

class AdValidator:
    def validate(self, ad: Ad, valid_ad_group_ids: Optional[set[str]] = None) -> list[ValidationError]:
        checks = _EntityChecks("ad", ad.id, ad.headline or f"Ad {ad.id}")

        if valid_ad_group_ids is not None and ad.ad_group_id not in valid_ad_group_ids:
            checks.add("ad_group_id", ValidationErrorCode.MISSING_DEPENDENCY,
                       f'Ad references ad group "{ad.ad_group_id}" which does not exist in this sync',
                       ad.ad_group_id)

        checks.max_length(ad.headline, "headline", MAX_HEADLINE_LENGTH)
        checks.max_length(ad.description, "description", MAX_DESCRIPTION_LENGTH)
        checks.max_length(ad.display_url, "display_url", MAX_DISPLAY_URL_LENGTH)

        if checks.required_string(ad.final_url, "final_url"):
            parsed = urlparse(ad.final_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                checks.add("final_url", ValidationErrorCode.INVALID_FORMAT,
                           "final_url must be an absolute http(s) URL", ad.final_url)

        if ad.call_to_action:
            cta = ad.call_to_action.upper().replace("-", "_")
            checks.enum_value(cta, "call_to_action", VALID_CALLS_TO_ACTION)

        return checks.errors


class KeywordValidator:
    def validate(self, keyword: Keyword) -> list[ValidationError]:
        checks = _EntityChecks("keyword", keyword.id, keyword.keyword or f"Keyword {keyword.id}")
        checks.required_string(keyword.keyword, "keyword", MAX_KEYWORD_LENGTH)
        checks.enum_value(keyword.match_type, "match_type", VALID_MATCH_TYPES)
        if keyword.bid is not None and keyword.bid <= 0:
            checks.add("bid", ValidationErrorCode.VALUE_OUT_OF_RANGE,
                       "bid must be a positive number", keyword.bid, "A positive number")
        return checks.errors
