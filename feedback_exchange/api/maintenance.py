"""
/api/v1/maintenance endpoints.
Manual triggers for the reapers the worker runs on a schedule.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.dependencies import get_db, verify_api_key
from feedback_exchange.exchange.maintenance import run_reaper

router = APIRouter(prefix="/api/v1/maintenance", tags=["maintenance"], dependencies=[Depends(verify_api_key)])


@router.post("/expire-listings")
async def expire_listings(session: AsyncSession = Depends(get_db)):
    """Open listings past their expiry become expired."""
    count = await run_reaper(session, "expire_listings")
    await session.commit()
    return {"expired": count}


@router.post("/reclaim-reviews")
async def reclaim_reviews(session: AsyncSession = Depends(get_db)):
    """Claimed listings past the review deadline reopen; their drafts are dropped."""
    count = await run_reaper(session, "reclaim_reviews")
    await session.commit()
    return {"reclaimed": count}


@router.post("/decay-strikes")
async def decay_strikes(session: AsyncSession = Depends(get_db)):
    count = await run_reaper(session, "decay_strikes")
    await session.commit()
    return {"decayed": count}
