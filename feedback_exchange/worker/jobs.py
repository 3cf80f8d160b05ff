"""
RQ job functions for the periodic reapers.
These are the entry points that the worker calls.
"""

import asyncio
from datetime import timedelta
from typing import Optional

import structlog
from redis import Redis
from rq import Queue

from feedback_exchange.config import settings
from feedback_exchange.exchange.maintenance import REAPERS, run_reaper
from feedback_exchange.models.database import build_engine, session_scope

logger = structlog.get_logger(__name__)


def get_queue() -> Queue:
    """Get the maintenance job queue."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.QUEUE_NAME, connection=conn)


def schedule_maintenance(queue: Optional[Queue] = None, delay_seconds: Optional[int] = None) -> str:
    """
    Enqueue one maintenance cycle after `delay_seconds`
    (default MAINTENANCE_INTERVAL_SECONDS). Returns the job ID.
    """
    q = queue if queue is not None else get_queue()
    delay = settings.MAINTENANCE_INTERVAL_SECONDS if delay_seconds is None else delay_seconds
    job = q.enqueue_in(
        timedelta(seconds=delay),
        run_maintenance_cycle,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
        result_ttl=86400,  # Keep results for 24 hours
        failure_ttl=604800,  # Keep failures for 7 days
    )
    logger.info("maintenance_scheduled", job_id=job.id, delay_seconds=delay)
    return job.id


def run_maintenance_cycle(reschedule: bool = True) -> dict:
    """
    Run every reaper, each in its own transaction, then queue the next cycle.
    One failing reaper does not stop the others; the cycle is always
    re-scheduled so the loop survives transient DB errors.
    """
    logger.info("maintenance_cycle_started")
    results = {}
    try:
        for name in REAPERS:
            try:
                results[name] = _run(name)
            except Exception:
                # Already logged by _run
                results[name] = None
    finally:
        if reschedule:
            schedule_maintenance()

    logger.info("maintenance_cycle_completed", results=results)
    return results


def expire_stale_listings_job() -> dict:
    return {"expired": _run("expire_listings")}


def reclaim_overdue_reviews_job() -> dict:
    return {"reclaimed": _run("reclaim_reviews")}


def decay_strikes_job() -> dict:
    return {"decayed": _run("decay_strikes")}


def _run(name: str) -> int:
    """Run one reaper synchronously inside the RQ worker process."""
    logger.info("job_started", job=name)
    try:
        affected = asyncio.run(_run_reaper_async(name))
    except Exception as e:
        logger.error("job_failed", job=name, error=str(e))
        raise
    logger.info("job_completed", job=name, affected=affected)
    return affected


async def _run_reaper_async(name: str) -> int:
    """
    A fresh engine per run: asyncio.run() creates a new loop each time and
    pooled asyncpg connections cannot cross loops.
    """
    from sqlalchemy.ext.asyncio import async_sessionmaker

    engine = build_engine(settings.DATABASE_URL)
    try:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_scope(factory) as session:
            return await run_reaper(session, name)
    finally:
        await engine.dispose()
