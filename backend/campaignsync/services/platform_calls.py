"""
Guarded Platform Calls — Every mutating adapter call goes through here.
Checks the platform's circuit breaker, applies the per-call timeout and records
the outcome back on the breaker.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from campaignsync.adapters.base import AdapterResult, PlatformApiError
from campaignsync.config import get_settings
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry, CircuitOpenError

logger = logging.getLogger(__name__)


class GuardedCaller:
    def __init__(self, breakers: CircuitBreakerRegistry, timeout_seconds: Optional[float] = None):
        self.breakers = breakers
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else get_settings().adapter_timeout_seconds

    async def call(self, platform: str, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        """
        Run fn(*args) against `platform`.

        Raises CircuitOpenError without calling when the breaker refuses. Exceptions
        and timeouts count as breaker failures, and so do retryable failed results.
        A non-retryable failed result means the platform answered, so it counts as a success.
        """
        breaker = self.breakers.get(platform)
        if not breaker.can_execute():
            raise CircuitOpenError(platform)

        try:
            result = await asyncio.wait_for(fn(*args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            breaker.record_failure()
            raise PlatformApiError(
                f"{platform} call timed out after {self.timeout_seconds}s", retryable=True,
            ) from e
        except Exception:
            breaker.record_failure()
            raise

        if isinstance(result, AdapterResult) and not result.success and result.retryable:
            breaker.record_failure()
        else:
            breaker.record_success()
        return result
