"""
Dispute resolution: open → under_review → {upheld | dismissed}.
Resolution may also jump straight from open.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.models.database import insert_for, utcnow
from feedback_exchange.models.enums import (
    DISPUTE_OUTCOMES,
    RESOLVABLE_DISPUTE_STATUSES,
    DisputeStatus,
)
from feedback_exchange.models.tables import FeedbackDispute, new_id

logger = structlog.get_logger(__name__)


async def get_dispute(session: AsyncSession, dispute_id: str) -> Optional[FeedbackDispute]:
    return await session.get(FeedbackDispute, dispute_id, populate_existing=True)


async def create_dispute(
    session: AsyncSession,
    review_id: str,
    filed_by_user_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> Optional[FeedbackDispute]:
    """
    File a dispute; one per (review, filer). Returns None if that filer
    already disputed the review. The check runs first, and the unique index
    settles the rare race between two identical filings.
    """
    existing = await session.execute(
        select(FeedbackDispute.id).where(
            FeedbackDispute.review_id == review_id,
            FeedbackDispute.filed_by_user_id == filed_by_user_id,
        )
    )
    if existing.first() is not None:
        logger.info("dispute_already_filed", review_id=review_id, filed_by_user_id=filed_by_user_id)
        return None

    now = now or utcnow()
    dispute_id = new_id("dispute")
    result = await session.execute(
        insert_for(session, FeedbackDispute.__table__)
        .values(
            id=dispute_id,
            review_id=review_id,
            filed_by_user_id=filed_by_user_id,
            reason=reason,
            status=DisputeStatus.OPEN.value,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["review_id", "filed_by_user_id"])
    )
    if not result.rowcount:
        logger.info("dispute_already_filed", review_id=review_id, filed_by_user_id=filed_by_user_id)
        return None

    logger.info("dispute_opened", dispute_id=dispute_id, review_id=review_id)
    return await session.get(FeedbackDispute, dispute_id)


async def list_disputes(
    session: AsyncSession,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[FeedbackDispute], int]:
    query = select(FeedbackDispute)
    if status:
        query = query.where(FeedbackDispute.status == status)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count_query)).scalar() or 0

    result = await session.execute(
        query.order_by(FeedbackDispute.created_at.desc(), FeedbackDispute.id)
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), total


async def mark_dispute_under_review(
    session: AsyncSession, dispute_id: str, now: Optional[datetime] = None
) -> Optional[FeedbackDispute]:
    """open → under_review; None from any other state."""
    now = now or utcnow()
    stmt = (
        update(FeedbackDispute)
        .where(
            FeedbackDispute.id == dispute_id,
            FeedbackDispute.status == DisputeStatus.OPEN.value,
        )
        .values(status=DisputeStatus.UNDER_REVIEW.value, updated_at=now)
        .returning(FeedbackDispute)
        .execution_options(populate_existing=True)
    )
    dispute = (await session.scalars(stmt)).one_or_none()
    if dispute is not None:
        logger.info("dispute_under_review", dispute_id=dispute_id)
    return dispute


async def resolve_dispute(
    session: AsyncSession,
    dispute_id: str,
    resolved_by_user_id: str,
    status: str,
    resolution_note: str,
    now: Optional[datetime] = None,
) -> Optional[FeedbackDispute]:
    """
    Close a dispute as upheld or dismissed, only from open/under_review.
    Issuing a strike for an upheld dispute is the caller's follow-up.
    """
    if status not in DISPUTE_OUTCOMES:
        raise ValueError(f"Dispute cannot be resolved to {status!r}")

    now = now or utcnow()
    stmt = (
        update(FeedbackDispute)
        .where(
            FeedbackDispute.id == dispute_id,
            FeedbackDispute.status.in_(RESOLVABLE_DISPUTE_STATUSES),
        )
        .values(
            status=status,
            resolved_by_user_id=resolved_by_user_id,
            resolution_note=resolution_note,
            updated_at=now,
        )
        .returning(FeedbackDispute)
        .execution_options(populate_existing=True)
    )
    dispute = (await session.scalars(stmt)).one_or_none()
    if dispute is None:
        logger.info("dispute_not_resolvable", dispute_id=dispute_id)
        return None

    logger.info(
        "dispute_resolved",
        dispute_id=dispute_id,
        status=status,
        resolved_by_user_id=resolved_by_user_id,
    )
    return dispute
