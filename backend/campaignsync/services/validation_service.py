"""
Sync Validation Service — Validates a whole campaign set before any platform call.
Collects every error (never stops at the first) so the caller can show the full list.
"""

import logging
import time
from typing import Optional

from pydantic import BaseModel, Field

from campaignsync.schemas import AdGroup, Campaign, CampaignSet
from campaignsync.services.platform_defaults import PlatformDefaultsResolver
from campaignsync.services.validators import (
    AdGroupValidator,
    AdValidator,
    CampaignValidator,
    KeywordValidator,
    ValidationError,
)

logger = logging.getLogger(__name__)


class EntityValidationResult(BaseModel):
    entity_id: str
    entity_name: str
    is_valid: bool
    errors: list[ValidationError] = Field(default_factory=list)


class AdGroupValidationResult(EntityValidationResult):
    ads: list[EntityValidationResult] = Field(default_factory=list)
    keywords: list[EntityValidationResult] = Field(default_factory=list)


class CampaignValidationResult(EntityValidationResult):
    ad_groups: list[AdGroupValidationResult] = Field(default_factory=list)


class ValidationSummary(BaseModel):
    campaigns_validated: int = 0
    ad_groups_validated: int = 0
    ads_validated: int = 0
    keywords_validated: int = 0
    campaigns_with_errors: int = 0
    ad_groups_with_errors: int = 0
    ads_with_errors: int = 0
    keywords_with_errors: int = 0


class ValidationResult(BaseModel):
    is_valid: bool
    campaign_set_id: str
    total_errors: int
    campaigns: list[CampaignValidationResult] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    validation_time_ms: int = 0


class SyncValidationService:
    def __init__(self, defaults: Optional[PlatformDefaultsResolver] = None):
        self.defaults = defaults or PlatformDefaultsResolver()
        self.campaign_validator = CampaignValidator(self.defaults)
        self.ad_group_validator = AdGroupValidator(self.defaults)
        self.ad_validator = AdValidator()
        self.keyword_validator = KeywordValidator()

    def validate_campaign_set(
        self,
        campaign_set: CampaignSet,
        platform: Optional[str] = None,
        use_campaign_platform: bool = False,
    ) -> ValidationResult:
        """
        Validate every campaign and its children.

        `platform` applies one platform's defaults to the whole set. With
        `use_campaign_platform=True` each campaign is validated against its own
        platform instead. With neither, the strictest rules apply.
        """
        started = time.perf_counter()
        campaign_ids = {c.id for c in campaign_set.campaigns}
        ad_group_ids = {ag.id for c in campaign_set.campaigns for ag in c.ad_groups}

        summary = ValidationSummary()
        results: list[CampaignValidationResult] = []
        total_errors = 0

        for campaign in campaign_set.campaigns:
            context = campaign.platform if use_campaign_platform else platform
            result = self._validate_campaign(campaign, context, campaign_ids, ad_group_ids)
            results.append(result)

            summary.campaigns_validated += 1
            summary.campaigns_with_errors += 0 if result.is_valid else 1
            total_errors += len(result.errors)
            for ag in result.ad_groups:
                summary.ad_groups_validated += 1
                summary.ad_groups_with_errors += 0 if ag.is_valid else 1
                total_errors += len(ag.errors)
                for ad in ag.ads:
                    summary.ads_validated += 1
                    summary.ads_with_errors += 0 if ad.is_valid else 1
                    total_errors += len(ad.errors)
                for kw in ag.keywords:
                    summary.keywords_validated += 1
                    summary.keywords_with_errors += 0 if kw.is_valid else 1
                    total_errors += len(kw.errors)

        elapsed_ms = round((time.perf_counter() - started) * 1000)
        if total_errors:
            logger.info(f"Validation of campaign set {campaign_set.id}: {total_errors} error(s)")
        return ValidationResult(
            is_valid=total_errors == 0,
            campaign_set_id=campaign_set.id,
            total_errors=total_errors,
            campaigns=results,
            summary=summary,
            validation_time_ms=elapsed_ms,
        )

    def _validate_campaign(
        self,
        campaign: Campaign,
        platform: Optional[str],
        campaign_ids: set[str],
        ad_group_ids: set[str],
    ) -> CampaignValidationResult:
        errors = self.campaign_validator.validate(campaign, platform)
        ad_groups = [
            self._validate_ad_group(ag, platform, campaign_ids, ad_group_ids)
            for ag in campaign.ad_groups
        ]
        return CampaignValidationResult(
            entity_id=campaign.id,
            entity_name=campaign.name,
            is_valid=not errors and all(ag.is_valid for ag in ad_groups),
            errors=errors,
            ad_groups=ad_groups,
        )

    def _validate_ad_group(
        self,
        ad_group: AdGroup,
        platform: Optional[str],
        campaign_ids: set[str],
        ad_group_ids: set[str],
    ) -> AdGroupValidationResult:
        errors = self.ad_group_validator.validate(ad_group, platform, campaign_ids)

        ads = []
        for ad in ad_group.ads:
            ad_errors = self.ad_validator.validate(ad, ad_group_ids)
            ads.append(EntityValidationResult(
                entity_id=ad.id,
                entity_name=ad.headline or f"Ad {ad.id}",
                is_valid=not ad_errors,
                errors=ad_errors,
            ))

        keywords = []
        for keyword in ad_group.keywords:
            kw_errors = self.keyword_validator.validate(keyword)
            keywords.append(EntityValidationResult(
                entity_id=keyword.id,
                entity_name=keyword.keyword,
                is_valid=not kw_errors,
                errors=kw_errors,
            ))

        return AdGroupValidationResult(
            entity_id=ad_group.id,
            entity_name=ad_group.name,
            is_valid=not errors and all(a.is_valid for a in ads) and all(k.is_valid for k in keywords),
            errors=errors,
            ads=ads,
            keywords=keywords,
        )

    @staticmethod
    def collect_all_errors(result: ValidationResult) -> list[ValidationError]:
        errors: list[ValidationError] = []
        for campaign in result.campaigns:
            errors.extend(campaign.errors)
            for ag in campaign.ad_groups:
                errors.extend(ag.errors)
                for ad in ag.ads:
                    errors.extend(ad.errors)
                for kw in ag.keywords:
                    errors.extend(kw.errors)
        return errors

    @staticmethod
    def format_validation_summary(result: ValidationResult) -> str:
        s = result.summary
        if result.is_valid:
            return (f"Validation passed: {s.campaigns_validated} campaigns, "
                    f"{s.ad_groups_validated} ad groups, {s.ads_validated} ads validated "
                    f"in {result.validation_time_ms}ms")

        lines = [f"Validation failed with {result.total_errors} error(s):"]
        if s.campaigns_with_errors:
            lines.append(f"  - {s.campaigns_with_errors}/{s.campaigns_validated} campaigns have errors")
        if s.ad_groups_with_errors:
            lines.append(f"  - {s.ad_groups_with_errors}/{s.ad_groups_validated} ad groups have errors")
        if s.ads_with_errors:
            lines.append(f"  - {s.ads_with_errors}/{s.ads_validated} ads have errors")
        if s.keywords_with_errors:
            lines.append(f"  - {s.keywords_with_errors}/{s.keywords_validated} keywords have errors")
        lines.append(f"  Completed in {result.validation_time_ms}ms")
        return "\n".join(lines)
