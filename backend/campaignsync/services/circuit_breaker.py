"""
Circuit Breaker — Per-platform failure isolation for ad platform calls.

closed → open after `failure_threshold` consecutive failures.
open → half-open once `reset_timeout_ms` has elapsed (checked in can_execute()).
half-open admits `half_open_max_attempts` trial calls; a success closes the
breaker, a failure reopens it with a fresh timestamp.

Breakers live in a CircuitBreakerRegistry owned by the application (created at
startup, reset at shutdown). State is in-memory only and best-effort under
concurrency: can_execute() + record_*() is a pattern, not a transaction.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from campaignsync.config import get_settings

logger = logging.getLogger(__name__)


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_ms: int = 60_000
    half_open_max_attempts: int = 1

    @classmethod
    def from_settings(cls) -> "CircuitBreakerConfig":
        settings = get_settings()
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout_ms=settings.circuit_reset_timeout_ms,
            half_open_max_attempts=settings.circuit_half_open_max_attempts,
        )


class CircuitOpenError(Exception):
    """Raised when a caller insists on running against an open breaker."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker open for platform: {name}")
        self.name = name


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._half_open_attempts = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None

    def can_execute(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and self._clock() - self._opened_at >= self.config.reset_timeout_ms:
                self._transition(CircuitState.HALF_OPEN)
            else:
                return False

        # half-open: admit a limited number of trial calls
        if self._half_open_attempts < self.config.half_open_max_attempts:
            self._half_open_attempts += 1
            return True
        return False

    def is_open(self) -> bool:
        """True while the breaker is refusing calls. Unlike can_execute() this never uses up a half-open trial."""
        if self._state != CircuitState.OPEN:
            return False
        return self._opened_at is None or self._clock() - self._opened_at < self.config.reset_timeout_ms

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self._failures = 0
        self._half_open_attempts = 0
        self._opened_at = None

    def record_failure(self) -> None:
        now = self._clock()
        self._last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._failures = self.config.failure_threshold
            self._open(now)
            return

        self._failures += 1
        if self._state == CircuitState.CLOSED and self._failures >= self.config.failure_threshold:
            self._open(now)

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._half_open_attempts = 0
        self._last_failure_time = None
        self._opened_at = None

    def get_state(self) -> CircuitState:
        return self._state

    def get_name(self) -> str:
        return self.name

    def get_failure_count(self) -> int:
        return self._failures

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failures,
            "half_open_attempts": self._half_open_attempts,
            "last_failure_time": self._last_failure_time,
        }

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._half_open_attempts = 0
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.warning(f"Circuit breaker [{self.name}]: {self._state.value} → {new_state.value} "
                       f"(failures={self._failures})")
        self._state = new_state
        if new_state == CircuitState.HALF_OPEN:
            self._half_open_attempts = 0


class CircuitBreakerRegistry:
    """One lazily-created breaker per platform string. Owned by the app, passed by reference."""

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, platform: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        breaker = self._breakers.get(platform)
        if breaker is None:
            breaker = CircuitBreaker(platform, config or self.default_config, clock=self._clock)
            self._breakers[platform] = breaker
        return breaker

    def all_stats(self) -> list[dict]:
        return [b.get_stats() for b in self._breakers.values()]

    def reset(self, platform: Optional[str] = None) -> None:
        """Drop every breaker (or just one platform's) so the next call starts closed."""
        if platform is None:
            self._breakers.clear()
            logger.info("Circuit breaker registry reset")
        else:
            self._breakers.pop(platform, None)
            logger.info(f"Circuit breaker [{platform}] reset")

    def __contains__(self, platform: str) -> bool:
        return platform in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
