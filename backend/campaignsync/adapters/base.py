"""
Platform Adapter — The seam between the local campaign hierarchy and one ad platform.

Adapters own all platform-specific field mapping, defaulting and wire formats.
Create/update calls report failure through AdapterResult (never raise for an API
rejection); delete/pause/resume raise on failure. Pollers read campaign state back.
"""

import abc
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from campaignsync.schemas import Ad, AdGroup, Campaign, Keyword, PlatformCampaignStatus

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


# ── Errors ────────────────────────────────────────────────────────────

class PlatformApiError(Exception):
    """An ad platform rejected a call or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        retry_after: Optional[float] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after
        self.details = details


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def classify_http_error(exc: Exception, platform: str = "") -> PlatformApiError:
    """Map an httpx failure to a PlatformApiError with a retryable flag."""
    prefix = f"{platform} API" if platform else "Platform API"
    if isinstance(exc, PlatformApiError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            details = response.json()
        except ValueError:
            details = response.text[:500] or None
        status = response.status_code
        return PlatformApiError(
            f"{prefix} error {status}",
            status_code=status,
            retryable=status in RETRYABLE_STATUS_CODES,
            retry_after=_retry_after_seconds(response),
            details=details,
        )
    if isinstance(exc, httpx.TimeoutException):
        return PlatformApiError(f"{prefix} timeout", retryable=True)
    if isinstance(exc, httpx.TransportError):
        return PlatformApiError(f"{prefix} connection error: {exc}", retryable=True)
    return PlatformApiError(str(exc) or exc.__class__.__name__)


# ── Results ───────────────────────────────────────────────────────────

@dataclass
class AdapterResult:
    success: bool
    platform_id: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False
    retry_after: Optional[float] = None

    @classmethod
    def ok(cls, platform_id: Optional[str]) -> "AdapterResult":
        return cls(success=True, platform_id=platform_id)

    @classmethod
    def failed(cls, exc: Exception, platform: str = "") -> "AdapterResult":
        err = classify_http_error(exc, platform)
        message = str(err)
        if err.details:
            message = f"{message} - Details: {err.details}"
        return cls(success=False, error=message, retryable=err.retryable, retry_after=err.retry_after)


# ── HTTP client ───────────────────────────────────────────────────────

class ApiClient:
    """Thin JSON-over-HTTP client shared by the REST adapters."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        platform: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.platform = platform
        self.transport = transport
        self.timeout = timeout

    async def request(self, method: str, path: str, json: Any = None, params: dict = None) -> Any:
        logger.info(f"{self.platform} API: {method} {path}")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                transport=self.transport,
                timeout=self.timeout,
            ) as client:
                response = await client.request(method, path, json=json, params=params)
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()
        except httpx.HTTPError as e:
            raise classify_http_error(e, self.platform) from e

    async def get(self, path: str, params: dict = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)


# ══════════════════════════════════════════════════════════════════════
#  INTERFACES
# ══════════════════════════════════════════════════════════════════════

class PlatformAdapter(abc.ABC):
    platform: str = ""

    # ── Campaigns ──
    @abc.abstractmethod
    async def create_campaign(self, campaign: Campaign) -> AdapterResult: ...

    @abc.abstractmethod
    async def update_campaign(self, campaign: Campaign, platform_campaign_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def delete_campaign(self, platform_campaign_id: str) -> None: ...

    @abc.abstractmethod
    async def pause_campaign(self, platform_campaign_id: str) -> None: ...

    @abc.abstractmethod
    async def resume_campaign(self, platform_campaign_id: str) -> None: ...

    # ── Ad groups ──
    @abc.abstractmethod
    async def create_ad_group(self, ad_group: AdGroup, platform_campaign_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def update_ad_group(self, ad_group: AdGroup, platform_ad_group_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def delete_ad_group(self, platform_ad_group_id: str) -> None: ...

    # ── Ads ──
    @abc.abstractmethod
    async def create_ad(self, ad: Ad, platform_ad_group_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def update_ad(self, ad: Ad, platform_ad_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def delete_ad(self, platform_ad_id: str) -> None: ...

    # ── Keywords ──
    @abc.abstractmethod
    async def create_keyword(self, keyword: Keyword, platform_ad_group_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def update_keyword(self, keyword: Keyword, platform_keyword_id: str) -> AdapterResult: ...

    @abc.abstractmethod
    async def delete_keyword(self, platform_keyword_id: str) -> None: ...


class PlatformPoller(abc.ABC):
    """Reads current campaign state back from a platform for reconciliation."""
    platform: str = ""

    @abc.abstractmethod
    async def get_campaign_status(self, platform_campaign_id: str) -> Optional[PlatformCampaignStatus]:
        """Current status, or None when the platform no longer knows the campaign."""

    @abc.abstractmethod
    async def list_campaign_statuses(self) -> list[PlatformCampaignStatus]: ...


# ── Test-mode stubs ───────────────────────────────────────────────────

class StubIdMixin:
    """Fake ids for adapters running without credentials (test mode)."""
    id_prefix = "stub"

    def _stub_id(self, entity_type: str, local_id: str) -> str:
        self._operation_count = getattr(self, "_operation_count", 0) + 1
        return f"{self.id_prefix}_{entity_type}_{local_id}_{int(time.time() * 1000)}_{self._operation_count}"
