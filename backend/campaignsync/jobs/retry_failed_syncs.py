"""
Job: retry-failed-syncs — Re-queues failed campaign syncs for a user.

Per campaign: consult the platform's circuit breaker, bump the retry count, and
either mark the campaign permanently failed (count reached max_retries) or reset
it to pending so the next sync picks it up. Once a platform's breaker refuses,
the rest of that platform's campaigns in the batch are skipped; other platforms
carry on.
"""

import logging
from typing import Awaitable, Callable, Optional

from campaignsync.config import get_settings
from campaignsync.jobs.types import RetryFailedSyncsJob, RetryFailedSyncsResult
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry
from campaignsync.utils import error_message

logger = logging.getLogger(__name__)

RetryHandler = Callable[[RetryFailedSyncsJob], Awaitable[RetryFailedSyncsResult]]


def max_retries_message(max_retries: int, last_error: Optional[str] = None) -> str:
    message = f"Max retries ({max_retries}) exceeded"
    return f"{message}. Last error: {last_error}" if last_error else message


def create_retry_failed_syncs_handler(
    repository: CampaignSetRepository,
    breakers: CircuitBreakerRegistry,
) -> RetryHandler:
    async def handle(job: RetryFailedSyncsJob) -> RetryFailedSyncsResult:
        max_retries = job.max_retries if job.max_retries is not None else get_settings().retry_max_retries
        result = RetryFailedSyncsResult()

        campaigns = await repository.get_failed_campaigns_for_retry(job.user_id, max_retries)
        if not campaigns:
            return result

        logger.info(f"Retrying {len(campaigns)} failed campaign sync(s) for user {job.user_id}")
        open_platforms: set[str] = set()

        for failed in campaigns:
            if failed.platform in open_platforms:
                result.skipped += 1
                continue

            breaker = breakers.get(failed.platform)
            if not breaker.can_execute():
                logger.warning(f"Circuit open for {failed.platform}; skipping remaining retries on that platform")
                open_platforms.add(failed.platform)
                result.skipped += 1
                continue

            result.processed += 1
            try:
                new_count = await repository.increment_retry_count(failed.campaign_id)
                if new_count >= max_retries:
                    await repository.mark_permanent_failure(
                        failed.campaign_id, max_retries_message(max_retries, failed.error_log),
                    )
                    result.permanent_failures += 1
                    continue

                await repository.reset_sync_for_retry(failed.campaign_id)
                breaker.record_success()
                result.succeeded += 1
            except Exception as e:
                logger.error(f"Retry of campaign {failed.campaign_id} failed: {error_message(e)}")
                breaker.record_failure()
                result.failed += 1

        logger.info(f"Retry batch for user {job.user_id}: processed={result.processed} succeeded={result.succeeded} "
                    f"failed={result.failed} skipped={result.skipped} permanent={result.permanent_failures}")
        return result

    return handle
