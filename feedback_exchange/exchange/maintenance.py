"""
Periodic reapers, shared by the maintenance endpoints and the RQ worker.
"""

import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.exchange import listings, reputation
from feedback_exchange.observability.metrics import (
    reaper_duration_seconds,
    reaper_rows_affected_total,
)

logger = structlog.get_logger(__name__)

Reaper = Callable[[AsyncSession, Optional[datetime]], Awaitable[int]]

REAPERS: dict[str, Reaper] = {
    "expire_listings": listings.expire_stale_listings,
    "reclaim_reviews": listings.reclaim_overdue_reviews,
    "decay_strikes": reputation.decay_expired_strikes,
}


async def run_reaper(session: AsyncSession, job: str, now: Optional[datetime] = None) -> int:
    """Run one reaper inside the caller's transaction and record its metrics."""
    reaper = REAPERS[job]
    start = time.monotonic()
    affected = await reaper(session, now)
    elapsed = time.monotonic() - start

    reaper_duration_seconds.labels(job=job).observe(elapsed)
    if affected:
        reaper_rows_affected_total.labels(job=job).inc(affected)
    logger.info("reaper_finished", job=job, affected=affected, duration_ms=int(elapsed * 1000))
    return affected
