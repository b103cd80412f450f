"""
Circuit Breaker Router — Inspect and manually reset per-platform breakers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from campaignsync.dependencies import get_breakers
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_circuit_breakers(breakers: CircuitBreakerRegistry = Depends(get_breakers)):
    return {"breakers": breakers.all_stats()}


@router.post("/reset")
async def reset_circuit_breakers(
    platform: Optional[str] = Query(None, description="Reset one platform; omit to reset all"),
    breakers: CircuitBreakerRegistry = Depends(get_breakers),
):
    breakers.reset(platform)
    logger.info(f"Manual circuit breaker reset: {platform or 'all platforms'}")
    return {"status": "reset", "platform": platform}
