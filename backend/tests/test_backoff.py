"""
Tests for the exponential backoff calculator.
"""

import math

from campaignsync.services.backoff import BackoffConfig, calculate_backoff_delay

NO_JITTER = BackoffConfig(base_delay_ms=1_000, multiplier=2.0, max_delay_ms=30_000, jitter=False)


def test_delay_grows_exponentially():
    assert calculate_backoff_delay(0, NO_JITTER) == 1_000
    assert calculate_backoff_delay(1, NO_JITTER) == 2_000
    assert calculate_backoff_delay(3, NO_JITTER) == 8_000


def test_delay_is_monotonic_until_cap():
    delays = [calculate_backoff_delay(n, NO_JITTER) for n in range(10)]
    assert delays == sorted(delays)
    assert delays[-1] == 30_000


def test_delay_capped_at_max_for_huge_attempts():
    assert calculate_backoff_delay(10_000, NO_JITTER) == 30_000


def test_invalid_attempts_treated_as_zero():
    for attempt in (-1, -100, math.nan, math.inf, None, "soon"):
        assert calculate_backoff_delay(attempt, NO_JITTER) == 1_000


def test_fractional_attempt_is_floored():
    assert calculate_backoff_delay(2.9, NO_JITTER) == 4_000


def test_jitter_stays_within_factor():
    config = BackoffConfig(base_delay_ms=1_000, multiplier=2.0, max_delay_ms=30_000, jitter=True, jitter_factor=0.1)
    assert calculate_backoff_delay(1, config, random_fn=lambda: 0.0) == 2_000
    assert calculate_backoff_delay(1, config, random_fn=lambda: 1.0) == 2_200
    assert 2_000 <= calculate_backoff_delay(1, config) <= 2_200


def test_jitter_never_exceeds_max():
    config = BackoffConfig(base_delay_ms=1_000, multiplier=2.0, max_delay_ms=30_000, jitter=True, jitter_factor=0.5)
    assert calculate_backoff_delay(20, config, random_fn=lambda: 1.0) == 30_000
