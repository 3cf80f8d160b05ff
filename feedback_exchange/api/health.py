"""
Health check endpoints.
/health always returns 200 so the platform healthcheck passes; DB
connectivity is reported but does not block the response.
"""

from typing import Optional

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from feedback_exchange.config import settings
from feedback_exchange.models.database import async_session_factory

router = APIRouter(tags=["health"])


async def _database_reachable() -> tuple[bool, Optional[str]]:
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1, None
    except Exception as e:
        return False, str(e)[:200]


@router.get("/health")
async def health_check():
    """Liveness plus a DB probe. ALWAYS returns 200."""
    db_ok, db_error = await _database_reachable()

    response = {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if db_ok else "unreachable",
    }
    if db_error:
        response["database_error"] = db_error

    return response


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}


@router.get("/health/ready")
async def readiness_check(response: Response):
    """Readiness probe: 503 until the database answers."""
    db_ok, _ = await _database_reachable()
    if not db_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"ready": db_ok}
