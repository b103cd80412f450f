"""
Shared utility functions.
"""

import logging
import uuid as uuid_mod
from datetime import datetime, timezone
from fastapi import HTTPException

logger = logging.getLogger(__name__)

# Sentinel written for "never synced" rows; the platform always wins against it.
EPOCH = datetime(1970, 1, 1)


def parse_uuid(value: str, field_name: str = "id") -> uuid_mod.UUID:
    """
    Parse a string as UUID, raising a 400 HTTPException on invalid input
    instead of letting a bare ValueError bubble up as a 500.
    """
    try:
        return uuid_mod.UUID(value)
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid UUID for '{field_name}': {value!r}",
        )


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def error_message(exc: BaseException) -> str:
    """Message for an exception, falling back to its class name when str() is empty."""
    return str(exc) or exc.__class__.__name__


def to_micro_units(amount: float) -> int:
    """
    Convert a currency amount to platform micro-units ($1.00 = 1,000,000).
    Rounds through cents first so 0.10 becomes exactly 100,000.
    """
    cents = round(amount * 100)
    return int(cents) * 10_000


def from_micro_units(micros) -> float:
    return float(micros) / 1_000_000
