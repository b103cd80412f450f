"""
Campaign Sync — FastAPI Backend
Synchronizes campaign sets to external ad platforms (Reddit, Google, Facebook,
Amazon) and reconciles platform-side changes back into PostgreSQL.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from fastapi import Depends, FastAPI
from campaignsync.adapters.registry import build_adapters, build_pollers
from campaignsync.auth import require_api_key
from campaignsync.config import get_settings
from campaignsync.database import async_session, init_db, check_db_connection
from campaignsync.jobs.events import InMemoryEventBus, UpstashEventPublisher
from campaignsync.repositories.campaign_set_repository import SqlAlchemyCampaignSetRepository
from campaignsync.routers import campaign_sets, campaigns, circuit_breakers, cron
from campaignsync.services.backoff import BackoffConfig
from campaignsync.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Campaign Sync...")
    app.state.breakers = CircuitBreakerRegistry(CircuitBreakerConfig.from_settings())
    app.state.adapters = build_adapters(settings)
    app.state.pollers = build_pollers(settings)
    app.state.events = UpstashEventPublisher.from_settings(settings) or InMemoryEventBus()
    app.state.repository = SqlAlchemyCampaignSetRepository(async_session, BackoffConfig.from_settings())
    try:
        await init_db()
        logger.info("Database initialized, all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    app.state.breakers.reset()
    logger.info("Shutting down...")


app = FastAPI(
    title="Campaign Sync",
    description="Campaign set synchronization and reconciliation for external ad platforms",
    version="1.0.0",
    lifespan=lifespan,
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag every response with X-Request-ID and log method, path, status and duration."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000)
        response.headers["X-Request-ID"] = request_id
        if request.url.path != "/api/health":
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms) [{request_id}]")
        return response


app.add_middleware(RequestLoggingMiddleware)

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(require_api_key)]
app.include_router(campaign_sets.router, prefix="/api/campaign-sets", tags=["Campaign Sets"], dependencies=_auth)
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"], dependencies=_auth)
app.include_router(circuit_breakers.router, prefix="/api/circuit-breakers", tags=["Circuit Breakers"], dependencies=_auth)
app.include_router(cron.router, prefix="/api")  # No API key, uses CRON_SECRET


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Campaign Sync",
        "database": "connected" if db_ok else "disconnected",
    }
