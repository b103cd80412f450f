"""
Tests for platform → local reconciliation and the sync-from-platform job.
"""

from datetime import datetime

import pytest
from unittest.mock import AsyncMock

from campaignsync.adapters.base import PlatformApiError, PlatformPoller
from campaignsync.jobs.sync_from_platform import create_sync_from_platform_handler
from campaignsync.jobs.types import SyncFromPlatformJob
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.schemas import ConflictDetails, PlatformCampaignStatus, SyncedCampaign
from campaignsync.services.reconciler import Reconciler, has_local_changes
from campaignsync.utils import EPOCH

SYNCED_AT = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository():
    return AsyncMock(spec=CampaignSetRepository)


@pytest.fixture
def poller():
    return AsyncMock(spec=PlatformPoller)


def _synced(campaign_id="camp-1", status="active", last_synced_at=SYNCED_AT, local_updated_at=SYNCED_AT):
    return SyncedCampaign(
        id=campaign_id,
        platform_campaign_id=f"p-{campaign_id}",
        local_status=status,
        last_synced_at=last_synced_at,
        local_updated_at=local_updated_at,
        platform="reddit",
    )


def _platform(campaign_id="camp-1", status="paused"):
    return PlatformCampaignStatus(platform_id=f"p-{campaign_id}", status=status)


# ── Local change detection ────────────────────────────────────────────

def test_local_change_requires_edit_after_sync():
    assert has_local_changes(_synced(local_updated_at=datetime(2026, 3, 1, 12, 0, 1))) is True
    assert has_local_changes(_synced(local_updated_at=SYNCED_AT)) is False


def test_epoch_baseline_never_counts_as_local_change():
    assert has_local_changes(_synced(last_synced_at=EPOCH, local_updated_at=datetime(2026, 1, 1))) is False
    assert has_local_changes(_synced(last_synced_at=None)) is False


# ── Account reconciliation ────────────────────────────────────────────

@pytest.mark.anyio
async def test_platform_change_applied_when_no_local_edit(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [_synced()]
    poller.list_campaign_statuses.return_value = [_platform(status="paused")]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.updated == 1
    repository.update_campaign_from_platform.assert_awaited_once()
    assert repository.update_campaign_from_platform.await_args.args[1].status == "paused"
    repository.mark_campaign_conflict.assert_not_awaited()


@pytest.mark.anyio
async def test_conflict_when_both_sides_changed(repository, poller):
    edited = _synced(local_updated_at=datetime(2026, 3, 2))
    repository.get_synced_campaigns_for_account.return_value = [edited]
    poller.list_campaign_statuses.return_value = [_platform(status="paused")]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.conflicts == 1
    repository.update_campaign_from_platform.assert_not_awaited()
    campaign_id, details = repository.mark_campaign_conflict.await_args.args
    assert campaign_id == "camp-1"
    assert isinstance(details, ConflictDetails)
    assert details.local_status == "active"
    assert details.platform_status == "paused"


@pytest.mark.anyio
async def test_epoch_synced_campaign_takes_platform_value(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [
        _synced(last_synced_at=EPOCH, local_updated_at=datetime(2026, 3, 2)),
    ]
    poller.list_campaign_statuses.return_value = [_platform(status="completed")]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.updated == 1
    assert summary.conflicts == 0


@pytest.mark.anyio
async def test_unchanged_and_deleted(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [_synced("camp-1"), _synced("camp-2")]
    poller.list_campaign_statuses.return_value = [_platform("camp-1", status="active")]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.unchanged == 1
    assert summary.deleted == 1
    repository.mark_campaign_deleted_on_platform.assert_awaited_once_with("camp-2")
    assert [c.outcome for c in summary.campaigns] == ["unchanged", "deleted"]


@pytest.mark.anyio
async def test_deleted_status_on_platform_marks_campaign_deleted(repository, poller):
    edited = _synced(local_updated_at=datetime(2026, 3, 2))
    repository.get_synced_campaigns_for_account.return_value = [edited]
    poller.list_campaign_statuses.return_value = [_platform(status="deleted")]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.deleted == 1
    assert summary.conflicts == 0
    repository.mark_campaign_deleted_on_platform.assert_awaited_once_with("camp-1")
    repository.update_campaign_from_platform.assert_not_awaited()
    repository.mark_campaign_conflict.assert_not_awaited()
    assert summary.campaigns[0].platform_status == "deleted"


@pytest.mark.anyio
async def test_never_synced_campaign_skipped(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [_synced(last_synced_at=None)]
    poller.list_campaign_statuses.return_value = []

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.skipped == 1
    repository.mark_campaign_deleted_on_platform.assert_not_awaited()


@pytest.mark.anyio
async def test_error_on_one_campaign_does_not_stop_batch(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [_synced("camp-1"), _synced("camp-2")]
    poller.list_campaign_statuses.return_value = [_platform("camp-1"), _platform("camp-2")]
    repository.update_campaign_from_platform.side_effect = [RuntimeError("deadlock detected"), None]

    summary = await Reconciler(repository, poller).reconcile_account("acct-1")

    assert summary.errors == 1
    assert summary.updated == 1
    assert summary.error_messages[0].campaign_id == "camp-1"
    assert summary.error_messages[0].message == "deadlock detected"


@pytest.mark.anyio
async def test_no_synced_campaigns_skips_platform_listing(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = []
    summary = await Reconciler(repository, poller).reconcile_account("acct-1")
    assert summary.updated == 0
    poller.list_campaign_statuses.assert_not_awaited()


@pytest.mark.anyio
async def test_reconcile_campaigns_counts_poll_failures(repository, poller):
    poller.get_campaign_status.side_effect = [
        PlatformApiError("Reddit API error 503", status_code=503, retryable=True),
        None,
    ]

    summary = await Reconciler(repository, poller).reconcile_campaigns([_synced("camp-1"), _synced("camp-2")])

    assert summary.errors == 1
    assert summary.deleted == 1
    repository.mark_campaign_deleted_on_platform.assert_awaited_once_with("camp-2")


# ── Job ───────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_sync_from_platform_job_uses_platform_poller(repository, poller):
    repository.get_synced_campaigns_for_account.return_value = [_synced()]
    poller.list_campaign_statuses.return_value = [_platform(status="paused")]
    handler = create_sync_from_platform_handler(repository, {"reddit": poller})

    summary = await handler(SyncFromPlatformJob(ad_account_id="acct-1", user_id="user-1"))

    assert summary.updated == 1
    repository.get_synced_campaigns_for_account.assert_awaited_once_with("acct-1")


@pytest.mark.anyio
async def test_sync_from_platform_job_rejects_unknown_platform(repository, poller):
    handler = create_sync_from_platform_handler(repository, {"reddit": poller})
    with pytest.raises(ValueError, match="Unsupported platform: snapchat"):
        await handler(SyncFromPlatformJob(ad_account_id="acct-1", user_id="user-1", platform="snapchat"))
