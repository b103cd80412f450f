"""
Tests for the HTTP surface: campaign sets, campaigns, circuit breakers and cron.
"""

import pytest
from unittest.mock import AsyncMock, patch
from httpx import AsyncClient, ASGITransport

from campaignsync.config import Settings
from campaignsync.dependencies import get_diff_service, get_sync_service
from campaignsync.jobs.events import InMemoryEventBus
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import CampaignSetSyncResult, CampaignSyncResult, DiffSyncResult, SyncError
from campaignsync.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from campaignsync.services.diff_service import DiffSyncService
from campaignsync.services.sync_service import CampaignSetSyncService

from factories import make_campaign, make_campaign_set

SET_ID = "6f1d3c9e-2a4b-4c8d-9e0f-1a2b3c4d5e6f"
CAMPAIGN_ID = "0b7e5a1c-3d2f-4e6a-8b9c-0d1e2f3a4b5c"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app():
    from campaignsync.main import app
    app.state.repository = AsyncMock(spec=CampaignSetRepository)
    app.state.breakers = CircuitBreakerRegistry()
    app.state.adapters = {}
    app.state.pollers = {}
    app.state.events = InMemoryEventBus()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def sync_service(app):
    service = AsyncMock(spec=CampaignSetSyncService)
    service.sync_campaign_set.return_value = CampaignSetSyncResult(success=True, set_id=SET_ID, synced=1)
    app.dependency_overrides[get_sync_service] = lambda: service
    return service


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _valid_set():
    return make_campaign_set([make_campaign("camp-1", set_id=SET_ID)], set_id=SET_ID)


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN SETS
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_sync_returns_result(app, sync_service):
    app.state.repository.get_campaign_set_with_relations.return_value = _valid_set()
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync")
    assert response.status_code == 200
    assert response.json()["synced"] == 1
    sync_service.sync_campaign_set.assert_awaited_once_with(SET_ID)


@pytest.mark.anyio
async def test_sync_rejects_invalid_set_before_any_platform_call(app, sync_service):
    invalid = make_campaign_set([make_campaign("camp-1", set_id=SET_ID, name="")], set_id=SET_ID)
    app.state.repository.get_campaign_set_with_relations.return_value = invalid
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync")
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION_FAILED"
    assert detail["errors"][0]["field"] == "name"
    sync_service.sync_campaign_set.assert_not_awaited()


@pytest.mark.anyio
async def test_sync_missing_set_is_404(app, sync_service):
    app.state.repository.get_campaign_set_with_relations.return_value = None
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_invalid_set_id_is_400(app, sync_service):
    async with _client(app) as client:
        response = await client.post("/api/campaign-sets/not-a-uuid/pause")
    assert response.status_code == 400


@pytest.mark.anyio
async def test_background_sync_queues_job(app, sync_service):
    app.state.repository.get_campaign_set_with_relations.return_value = _valid_set()
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync", params={"background": "true"})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"
    assert body["job_id"]
    sync_service.sync_campaign_set.assert_awaited_once_with(SET_ID)


@pytest.mark.anyio
async def test_background_sync_gated_by_the_sets_own_platforms(app, sync_service):
    google_set = make_campaign_set([make_campaign("camp-1", set_id=SET_ID, platform="google")], set_id=SET_ID)
    app.state.repository.get_campaign_set_with_relations.return_value = google_set
    app.state.breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1))
    app.state.breakers.get("reddit").record_failure()

    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync", params={"background": "true"})
    assert response.status_code == 200
    sync_service.sync_campaign_set.assert_awaited_once_with(SET_ID)

    sync_service.sync_campaign_set.reset_mock()
    app.state.breakers.get("google").record_failure()
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/sync", params={"background": "true"})
    assert response.json()["status"] == "queued"
    sync_service.sync_campaign_set.assert_not_awaited()


@pytest.mark.anyio
async def test_pause_not_found_maps_to_404(app, sync_service):
    from campaignsync.schemas import PauseResult
    sync_service.pause_campaign_set.return_value = PauseResult(set_id=SET_ID, errors=[
        SyncError(code="CAMPAIGN_SET_NOT_FOUND", message=f"Campaign set with ID {SET_ID} not found"),
    ])
    async with _client(app) as client:
        response = await client.post(f"/api/campaign-sets/{SET_ID}/pause")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_validate_with_platform(app):
    bare = make_campaign("camp-1", set_id=SET_ID, campaign_data={})
    app.state.repository.get_campaign_set_with_relations.return_value = make_campaign_set([bare], set_id=SET_ID)
    async with _client(app) as client:
        reddit = await client.post(f"/api/campaign-sets/{SET_ID}/validate", params={"platform": "reddit"})
        google = await client.post(f"/api/campaign-sets/{SET_ID}/validate", params={"platform": "google"})
    assert reddit.json()["is_valid"] is True
    assert google.json()["is_valid"] is False
    assert google.json()["message"].startswith("Validation failed")


@pytest.mark.anyio
async def test_diff_preview_and_apply(app):
    current = _valid_set()
    app.state.repository.get_campaign_set_with_relations.return_value = current
    service = AsyncMock(spec=DiffSyncService)
    real = DiffSyncService()
    service.calculate_diff.side_effect = real.calculate_diff
    service.plan.side_effect = real.plan
    service.apply_diff.return_value = DiffSyncResult(success=True, updated=1)
    app.dependency_overrides[get_diff_service] = lambda: service

    renamed = make_campaign("camp-1", set_id=SET_ID, name="Renamed").model_dump(mode="json")
    async with _client(app) as client:
        preview = await client.post(f"/api/campaign-sets/{SET_ID}/diff", json={"campaigns": [renamed]})
        applied = await client.post(f"/api/campaign-sets/{SET_ID}/diff", params={"apply": "true"},
                                    json={"campaigns": [renamed]})

    assert preview.status_code == 200
    assert preview.json()["is_empty"] is False
    assert preview.json()["operations"] == 1
    assert preview.json()["diff"]["campaigns_to_update"][0]["changes"] == ["name"]
    assert "result" not in preview.json()
    assert applied.json()["result"]["updated"] == 1
    service.apply_diff.assert_awaited_once()


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGNS
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_sync_single_campaign_not_found(app, sync_service):
    sync_service.sync_campaign.return_value = CampaignSyncResult(
        campaign_id=CAMPAIGN_ID, platform="unknown", success=False, error="Campaign not found",
    )
    async with _client(app) as client:
        response = await client.post(f"/api/campaigns/{CAMPAIGN_ID}/sync")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_resolve_conflict(app):
    app.state.repository.resolve_campaign_conflict.side_effect = [True, False]
    async with _client(app) as client:
        ok = await client.post(f"/api/campaigns/{CAMPAIGN_ID}/resolve-conflict", json={"resolution": "keep_platform"})
        none = await client.post(f"/api/campaigns/{CAMPAIGN_ID}/resolve-conflict", json={"resolution": "keep_local"})
        bad = await client.post(f"/api/campaigns/{CAMPAIGN_ID}/resolve-conflict", json={"resolution": "coin_flip"})
    assert ok.status_code == 200
    assert none.status_code == 409
    assert bad.status_code == 422


# ══════════════════════════════════════════════════════════════════════
#  CIRCUIT BREAKERS
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_breaker_stats_and_reset(app):
    app.state.breakers.get("reddit").record_failure()
    async with _client(app) as client:
        stats = await client.get("/api/circuit-breakers")
        reset = await client.post("/api/circuit-breakers/reset", params={"platform": "reddit"})
    assert stats.json()["breakers"][0]["name"] == "reddit"
    assert stats.json()["breakers"][0]["failures"] == 1
    assert reset.json() == {"status": "reset", "platform": "reddit"}
    assert "reddit" not in app.state.breakers


@pytest.mark.anyio
async def test_api_key_enforced_when_configured(app):
    with patch("campaignsync.auth.get_settings", return_value=Settings(api_key="k-1")):
        async with _client(app) as client:
            missing = await client.get("/api/circuit-breakers")
            wrong = await client.get("/api/circuit-breakers", headers={"Authorization": "Bearer nope"})
            ok = await client.get("/api/circuit-breakers", headers={"Authorization": "Bearer k-1"})
    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200


# ══════════════════════════════════════════════════════════════════════
#  CRON
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.anyio
async def test_cron_requires_secret(app):
    with patch("campaignsync.auth.get_settings", return_value=Settings(cron_secret="s3cret")):
        async with _client(app) as client:
            response = await client.post("/api/cron/retry-failed-syncs", json={"user_id": "user-1"},
                                         headers={"X-Cron-Secret": "wrong"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_cron_unconfigured_secret_is_500(app):
    with patch("campaignsync.auth.get_settings", return_value=Settings(cron_secret="")):
        async with _client(app) as client:
            response = await client.post("/api/cron/retry-failed-syncs", json={"user_id": "user-1"})
    assert response.status_code == 500


@pytest.mark.anyio
async def test_cron_retry_failed_syncs(app):
    app.state.repository.get_failed_campaigns_for_retry.return_value = []
    with patch("campaignsync.auth.get_settings", return_value=Settings(cron_secret="s3cret")):
        async with _client(app) as client:
            response = await client.post("/api/cron/retry-failed-syncs",
                                         json={"user_id": "user-1", "max_retries": 5},
                                         headers={"Authorization": "Bearer s3cret"})
    assert response.status_code == 200
    assert response.json()["result"]["processed"] == 0
    app.state.repository.get_failed_campaigns_for_retry.assert_awaited_once_with("user-1", 5)


@pytest.mark.anyio
async def test_cron_sync_from_unsupported_platform_is_400(app):
    with patch("campaignsync.auth.get_settings", return_value=Settings(cron_secret="s3cret")):
        async with _client(app) as client:
            response = await client.post("/api/cron/sync-from-platform",
                                         json={"ad_account_id": "acct-1", "user_id": "user-1"},
                                         headers={"X-Cron-Secret": "s3cret"})
    assert response.status_code == 400
    assert "Unsupported platform: reddit" in response.json()["detail"]
