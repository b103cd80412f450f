"""
Tests for the retry-failed-syncs and sync-campaign-set jobs.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from campaignsync.jobs.events import InMemoryEventBus, done_channel, progress_channel
from campaignsync.jobs.retry_failed_syncs import create_retry_failed_syncs_handler, max_retries_message
from campaignsync.jobs.sync_campaign_set import (
    create_sync_campaign_set_handler,
    create_sync_campaign_set_handler_with_events,
)
from campaignsync.jobs.types import RetryFailedSyncsJob, SyncCampaignSetJob
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import CampaignSetSyncResult, FailedCampaignForRetry, SyncError
from campaignsync.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
)
from campaignsync.services.sync_service import CampaignSetSyncService


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository():
    return AsyncMock(spec=CampaignSetRepository)


def _failed(campaign_id, platform="reddit", retry_count=0, error_log="Reddit API error 500"):
    return FailedCampaignForRetry(
        sync_record_id=f"rec-{campaign_id}",
        campaign_id=campaign_id,
        platform=platform,
        retry_count=retry_count,
        error_log=error_log,
    )


def _open_registry(*platforms):
    registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1))
    for platform in platforms:
        registry.get(platform).record_failure()
    return registry


# ══════════════════════════════════════════════════════════════════════
#  RETRY FAILED SYNCS
# ══════════════════════════════════════════════════════════════════════

def test_max_retries_message():
    assert max_retries_message(3) == "Max retries (3) exceeded"
    assert max_retries_message(3, "timeout") == "Max retries (3) exceeded. Last error: timeout"


@pytest.mark.anyio
async def test_retry_with_nothing_to_do(repository):
    repository.get_failed_campaigns_for_retry.return_value = []
    result = await create_retry_failed_syncs_handler(repository, CircuitBreakerRegistry())(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )
    assert result.model_dump() == {
        "processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "permanent_failures": 0,
    }


@pytest.mark.anyio
async def test_retry_resets_campaign_for_next_sync(repository):
    repository.get_failed_campaigns_for_retry.return_value = [_failed("camp-1")]
    repository.increment_retry_count.return_value = 1

    result = await create_retry_failed_syncs_handler(repository, CircuitBreakerRegistry())(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )

    assert result.processed == 1
    assert result.succeeded == 1
    repository.reset_sync_for_retry.assert_awaited_once_with("camp-1")
    repository.mark_permanent_failure.assert_not_awaited()


@pytest.mark.anyio
async def test_retry_skips_every_campaign_on_open_platform(repository):
    repository.get_failed_campaigns_for_retry.return_value = [
        _failed("camp-1"), _failed("camp-2"), _failed("camp-3", platform="google"),
    ]
    repository.increment_retry_count.return_value = 1

    result = await create_retry_failed_syncs_handler(repository, _open_registry("reddit"))(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )

    assert result.skipped == 2
    assert result.succeeded == 1
    repository.increment_retry_count.assert_awaited_once_with("camp-3")


@pytest.mark.anyio
async def test_retry_breaker_opening_mid_batch(repository):
    breaker = MagicMock()
    breaker.can_execute.side_effect = [True, False]
    breakers = MagicMock(spec=CircuitBreakerRegistry)
    breakers.get.return_value = breaker
    repository.get_failed_campaigns_for_retry.return_value = [_failed("camp-1"), _failed("camp-2")]
    repository.increment_retry_count.return_value = 1

    result = await create_retry_failed_syncs_handler(repository, breakers)(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )

    assert result.succeeded == 1
    assert result.skipped == 1
    breaker.record_success.assert_called_once()


@pytest.mark.anyio
async def test_retry_marks_permanent_failure_at_max(repository):
    repository.get_failed_campaigns_for_retry.return_value = [_failed("camp-1", retry_count=2)]
    repository.increment_retry_count.return_value = 3

    result = await create_retry_failed_syncs_handler(repository, CircuitBreakerRegistry())(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )

    assert result.permanent_failures == 1
    assert result.succeeded == 0
    campaign_id, reason = repository.mark_permanent_failure.await_args.args
    assert campaign_id == "camp-1"
    assert "Max retries" in reason
    repository.reset_sync_for_retry.assert_not_awaited()


@pytest.mark.anyio
async def test_retry_exception_counts_as_breaker_failure(repository):
    registry = CircuitBreakerRegistry()
    repository.get_failed_campaigns_for_retry.return_value = [_failed("camp-1")]
    repository.increment_retry_count.side_effect = RuntimeError("connection lost")

    result = await create_retry_failed_syncs_handler(repository, registry)(
        RetryFailedSyncsJob(user_id="user-1", max_retries=3),
    )

    assert result.failed == 1
    assert result.processed == 1
    assert registry.get("reddit").get_failure_count() == 1


@pytest.mark.anyio
async def test_retry_uses_configured_default_max(repository):
    repository.get_failed_campaigns_for_retry.return_value = []
    await create_retry_failed_syncs_handler(repository, CircuitBreakerRegistry())(
        RetryFailedSyncsJob(user_id="user-1"),
    )
    repository.get_failed_campaigns_for_retry.assert_awaited_once_with("user-1", 3)


# ══════════════════════════════════════════════════════════════════════
#  SYNC CAMPAIGN SET
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def sync_service():
    service = AsyncMock(spec=CampaignSetSyncService)
    service.sync_campaign_set.return_value = CampaignSetSyncResult(
        success=False, set_id="set-1", synced=2, failed=1, skipped=1,
        errors=[SyncError(campaign_id="camp-3", platform="reddit", code="SYNC_FAILED", message="bad")],
    )
    return service


def _job(platform="reddit"):
    return SyncCampaignSetJob(campaign_set_id="set-1", user_id="user-1", platform=platform)


@pytest.mark.anyio
async def test_sync_job_maps_service_result(sync_service):
    result = await create_sync_campaign_set_handler(sync_service, CircuitBreakerRegistry())(_job())

    assert (result.synced, result.failed, result.skipped) == (2, 1, 1)
    assert result.errors[0].code == "SYNC_FAILED"
    sync_service.sync_campaign_set.assert_awaited_once_with("set-1")


@pytest.mark.anyio
async def test_sync_job_refuses_open_breaker(sync_service):
    with pytest.raises(CircuitOpenError):
        await create_sync_campaign_set_handler(sync_service, _open_registry("reddit"))(_job())
    sync_service.sync_campaign_set.assert_not_awaited()


@pytest.mark.anyio
async def test_sync_job_runs_while_any_targeted_platform_is_up(sync_service):
    job = SyncCampaignSetJob(campaign_set_id="set-1", user_id="user-1", platforms=["google", "reddit"])

    await create_sync_campaign_set_handler(sync_service, _open_registry("reddit"))(job)
    sync_service.sync_campaign_set.assert_awaited_once_with("set-1")

    with pytest.raises(CircuitOpenError):
        await create_sync_campaign_set_handler(sync_service, _open_registry("google", "reddit"))(job)
    assert sync_service.sync_campaign_set.await_count == 1


@pytest.mark.anyio
async def test_sync_job_leaves_half_open_trial_for_the_service(sync_service):
    clock = MagicMock(return_value=0.0)
    registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1, reset_timeout_ms=100), clock=clock)
    registry.get("reddit").record_failure()
    clock.return_value = 200.0

    await create_sync_campaign_set_handler(sync_service, registry)(_job())

    assert registry.get("reddit").can_execute() is True


@pytest.mark.anyio
async def test_sync_job_emits_progress_and_completed(sync_service):
    bus = InMemoryEventBus()
    progress = bus.subscribe(progress_channel("job-1"))
    done = bus.subscribe(done_channel("job-1"))

    handler = create_sync_campaign_set_handler_with_events(sync_service, CircuitBreakerRegistry(), bus)
    await handler("job-1", _job())

    events = [progress.get_nowait(), progress.get_nowait()]
    assert [e.type for e in events] == ["progress", "completed"]
    assert events[1].data == {"synced": 2, "failed": 1, "total": 3}
    assert done.get_nowait().type == "completed"
    assert done.empty()


@pytest.mark.anyio
async def test_sync_job_emits_error_and_reraises(sync_service):
    sync_service.sync_campaign_set.side_effect = RuntimeError("database unavailable")
    bus = InMemoryEventBus()
    done = bus.subscribe(done_channel("job-1"))

    handler = create_sync_campaign_set_handler_with_events(sync_service, CircuitBreakerRegistry(), bus)
    with pytest.raises(RuntimeError):
        await handler("job-1", _job())

    event = done.get_nowait()
    assert event.type == "error"
    assert event.data == {"error": "database unavailable"}


@pytest.mark.anyio
async def test_sync_job_survives_broken_event_channel(sync_service):
    events = AsyncMock()
    events.emit.side_effect = ConnectionError("redis down")

    handler = create_sync_campaign_set_handler_with_events(sync_service, CircuitBreakerRegistry(), events)
    result = await handler("job-1", _job())

    assert result.synced == 2
    assert events.emit.await_count == 2
