"""
Backoff Calculator — Exponential retry delay with optional jitter.
delay = min(base × multiplier^attempt, max), plus uniform jitter in [0, delay × jitter_factor],
never exceeding max.
"""

import math
import random
from dataclasses import dataclass
from typing import Callable, Optional

from campaignsync.config import get_settings


@dataclass(frozen=True)
class BackoffConfig:
    base_delay_ms: float = 1_000
    multiplier: float = 2.0
    max_delay_ms: float = 30_000
    jitter: bool = True
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls) -> "BackoffConfig":
        settings = get_settings()
        return cls(
            base_delay_ms=settings.backoff_base_delay_ms,
            multiplier=settings.backoff_multiplier,
            max_delay_ms=settings.backoff_max_delay_ms,
            jitter=settings.backoff_jitter,
            jitter_factor=settings.backoff_jitter_factor,
        )


def calculate_backoff_delay(
    attempt,
    config: Optional[BackoffConfig] = None,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """
    Delay in milliseconds before retry number `attempt` (0-based).
    Negative, NaN or infinite attempts are treated as attempt 0. Never raises.
    """
    config = config or BackoffConfig()
    try:
        attempt = float(attempt)
    except (TypeError, ValueError):
        attempt = 0.0
    if not math.isfinite(attempt) or attempt < 0:
        attempt = 0.0
    attempt = math.floor(attempt)

    try:
        raw = config.base_delay_ms * (config.multiplier ** attempt)
    except OverflowError:
        raw = math.inf
    delay = min(raw, config.max_delay_ms)
    if config.jitter and config.jitter_factor > 0:
        delay += random_fn() * delay * config.jitter_factor
    return max(0.0, min(delay, config.max_delay_ms))
