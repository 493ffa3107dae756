"""
Purge API

Endpoints for submitting invalidations and reading pacing hints.

Endpoints:
- POST /api/purge: process a list of invalidations and report their states
- GET /api/purge/capacity: time hint, cooldown and request limit for schedulers
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from section_purger.purge import (
    Invalidation,
    InvalidationState,
    InvalidationType,
    RouterMisuseError,
    SectionPurgerBase,
    create_purger,
    get_purger_settings,
    process,
)


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/purge", tags=["Purge"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class InvalidationRequest(BaseModel):
    """A single invalidation instruction."""
    type: InvalidationType
    expression: Optional[str] = Field(
        default=None,
        description="Type-specific expression, e.g. 'node:1', 'news/*', 'https://example.com/'"
    )


class PurgeRequestBody(BaseModel):
    """Invalidations to process in one call."""
    invalidations: List[InvalidationRequest] = Field(..., min_length=1)


class InvalidationStatus(BaseModel):
    id: str
    type: InvalidationType
    expression: Optional[str] = None
    state: str


class PurgeResponse(BaseModel):
    """Outcome of a purge call."""
    success: bool
    succeeded: int
    failed: int
    duration_ms: float
    cooldown_time: float = Field(..., description="Seconds to wait before the next burst")
    invalidations: List[InvalidationStatus]


class CapacityResponse(BaseModel):
    """Pacing hints for the scheduler."""
    label: str
    types: List[str]
    ideal_conditions_limit: int
    cooldown_time: float
    time_hint: float
    runtime_measurement: bool


# =============================================================================
# DEPENDENCIES
# =============================================================================

@lru_cache
def get_purger() -> SectionPurgerBase:
    """Get the configured purger (bundled)."""
    return create_purger(get_purger_settings(), bundled=True)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=PurgeResponse)
async def purge(body: PurgeRequestBody, purger: SectionPurgerBase = Depends(get_purger)):
    """
    Process invalidations.

    Invalidations are grouped by type; tags are bundled. Failed items are
    reported with state "failed" and should be re-queued by the caller.
    """
    start = datetime.utcnow()
    invalidations = [Invalidation(item.type, item.expression) for item in body.invalidations]

    try:
        await process(purger, invalidations)
    except RouterMisuseError as e:
        logger.critical(f"Purge routing error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    elapsed = (datetime.utcnow() - start).total_seconds() * 1000
    succeeded = sum(1 for i in invalidations if i.state is InvalidationState.SUCCEEDED)
    failed = len(invalidations) - succeeded

    logger.info(f"Purge complete: {succeeded} succeeded, {failed} failed, {elapsed:.2f}ms")

    return PurgeResponse(
        success=failed == 0,
        succeeded=succeeded,
        failed=failed,
        duration_ms=elapsed,
        cooldown_time=purger.get_cooldown_time(),
        invalidations=[
            InvalidationStatus(
                id=i.id,
                type=i.type,
                expression=i.expression,
                state=i.state.value,
            )
            for i in invalidations
        ],
    )


@router.get("/capacity", response_model=CapacityResponse)
def get_capacity(purger: SectionPurgerBase = Depends(get_purger)):
    """
    Get pacing hints.

    Schedulers should hand the purger at most ideal_conditions_limit
    invalidations per run, budget time_hint seconds per request and wait
    cooldown_time seconds after each burst.
    """
    return CapacityResponse(
        label=purger.label,
        types=[t.value for t in purger.get_types()],
        ideal_conditions_limit=purger.get_ideal_conditions_limit(),
        cooldown_time=purger.get_cooldown_time(),
        time_hint=purger.get_time_hint(),
        runtime_measurement=purger.has_runtime_measurement(),
    )
