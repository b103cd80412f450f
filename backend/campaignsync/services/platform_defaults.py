"""
Platform Defaults Resolver — Field values an ad platform fills in on its own.
A field with a registered default is not "missing" during pre-flight validation.
Platforms are open strings; KNOWN_PLATFORMS only drives built-in default lookup.
"""

import copy
import logging
from typing import Any, Literal

logger = logging.getLogger(__name__)

EntityType = Literal["campaign", "ad_group", "ad"]

KNOWN_PLATFORMS: tuple[str, ...] = ("reddit", "google", "facebook", "amazon")

_EMPTY_DEFAULTS: dict[str, dict[str, Any]] = {"campaign": {}, "ad_group": {}, "ad": {}}

_BUILT_IN_DEFAULTS: dict[str, dict[str, dict[str, Any]]] = {
    "reddit": {
        "campaign": {
            "objective": "IMPRESSIONS",
            "special_ad_categories": ["NONE"],
        },
        "ad_group": {
            "bid_strategy": "MAXIMIZE_VOLUME",
            "bid_type": "CPC",
        },
        # call_to_action falls back to LEARN_MORE in the adapter but is optional anyway
        "ad": {},
    },
    "google": {"campaign": {}, "ad_group": {}, "ad": {}},
}


def _normalize(defaults: dict) -> dict[str, dict[str, Any]]:
    return {entity: copy.deepcopy(dict(defaults.get(entity) or {})) for entity in _EMPTY_DEFAULTS}


class PlatformDefaultsResolver:
    def __init__(self):
        self._defaults: dict[str, dict[str, dict[str, Any]]] = {
            platform: _normalize(defaults) for platform, defaults in _BUILT_IN_DEFAULTS.items()
        }

    def get_defaults(self, platform: str) -> dict[str, dict[str, Any]]:
        """Deep copy of the platform's defaults; unknown platforms get empty defaults."""
        return copy.deepcopy(self._defaults.get(platform, _EMPTY_DEFAULTS))

    def has_default(self, platform: str, entity_type: EntityType, field: str) -> bool:
        defaults = self._defaults.get(platform)
        if not defaults:
            return False
        return field in defaults.get(entity_type, {})

    def get_default(self, platform: str, entity_type: EntityType, field: str) -> Any:
        defaults = self._defaults.get(platform)
        if not defaults:
            return None
        return copy.deepcopy(defaults.get(entity_type, {}).get(field))

    def register_defaults(self, platform: str, defaults: dict) -> None:
        """Register (or replace) defaults for any platform, known or custom."""
        self._defaults[platform] = _normalize(defaults)
        logger.info(f"Registered defaults for platform '{platform}'")

    @staticmethod
    def is_known_platform(platform: str) -> bool:
        return platform in KNOWN_PLATFORMS
