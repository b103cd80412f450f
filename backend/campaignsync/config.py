import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/campaign_sync"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Managed Postgres gives postgresql://, we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    # "disable", "require" (encrypt, skip cert check) or "verify"
    database_ssl: str = "disable"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_connect_timeout_seconds: float = 30.0

    api_key: str = ""  # Required in production; in dev, empty = auth disabled
    cron_secret: str = ""

    # Circuit breaker (per platform, in-memory)
    circuit_failure_threshold: int = 5
    circuit_reset_timeout_ms: int = 60_000
    circuit_half_open_max_attempts: int = 1

    # Retry backoff
    backoff_base_delay_ms: int = 1_000
    backoff_multiplier: float = 2.0
    backoff_max_delay_ms: int = 30_000
    backoff_jitter: bool = True
    backoff_jitter_factor: float = 0.1

    retry_max_retries: int = 3
    adapter_timeout_seconds: float = 15.0

    # Reddit Ads (v3)
    reddit_api_base: str = "https://ads-api.reddit.com/api/v3"
    reddit_access_token: str = ""
    reddit_account_id: str = ""
    reddit_funding_instrument_id: str = ""

    # Google Ads (REST)
    google_api_base: str = "https://googleads.googleapis.com/v17"
    google_customer_id: str = ""
    google_developer_token: str = ""
    google_access_token: str = ""

    # Facebook Marketing API (Graph)
    facebook_api_base: str = "https://graph.facebook.com/v19.0"
    facebook_access_token: str = ""
    facebook_ad_account_id: str = ""

    # Amazon Ads MCP Server
    amazon_client_id: str = ""
    amazon_access_token: str = ""
    amazon_region: str = "na"
    amazon_profile_id: str = ""

    # Upstash Redis (sync progress events)
    upstash_redis_rest_url: str = ""
    upstash_redis_rest_token: str = ""

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if not self.api_key:
                raise ValueError(
                    "API_KEY must be set in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.cron_secret:
                logger.warning("CRON_SECRET is not set, cron endpoints will reject every call.")
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
