"""
Reviewer reputation, ratings, strikes and suspensions.

Reputation is an aggregate over ratings, strikes and suspensions computed on
every read. Escalation from strikes to suspension is policy and lives with the
caller (see exchange.policy); this module only exposes explicit actions.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.config import settings
from feedback_exchange.models.database import insert_for, utcnow
from feedback_exchange.models.tables import (
    FeedbackReview,
    ReviewerRating,
    ReviewerStrike,
    ReviewerSuspension,
    new_id,
)
from feedback_exchange.schemas.reputation import ReviewerReputation

logger = structlog.get_logger(__name__)


# ── Ratings ──────────────────────────────────────────────────

async def get_rating_by_review(session: AsyncSession, review_id: str) -> Optional[ReviewerRating]:
    result = await session.execute(
        select(ReviewerRating).where(ReviewerRating.review_id == review_id)
    )
    return result.scalar_one_or_none()


async def create_rating(
    session: AsyncSession,
    review_id: str,
    rater_user_id: str,
    score: int,
    comment: str = "",
) -> Optional[ReviewerRating]:
    """
    Rate a review once. A second rating for the same review returns None;
    the unique index on review_id absorbs the race via ON CONFLICT DO NOTHING.
    """
    rating_id = new_id("rating")
    result = await session.execute(
        insert_for(session, ReviewerRating.__table__)
        .values(
            id=rating_id,
            review_id=review_id,
            rater_user_id=rater_user_id,
            score=score,
            comment=comment,
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["review_id"])
    )
    if not result.rowcount:
        logger.info("rating_already_exists", review_id=review_id, rater_user_id=rater_user_id)
        return None

    rating = await session.get(ReviewerRating, rating_id)
    logger.info("rating_created", rating_id=rating_id, review_id=review_id, score=score)
    return rating


# ── Strikes ──────────────────────────────────────────────────

async def issue_strike(
    session: AsyncSession,
    reviewer_user_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> ReviewerStrike:
    now = now or utcnow()
    strike = ReviewerStrike(
        id=new_id("strike"),
        reviewer_user_id=reviewer_user_id,
        reason=reason,
        is_active=True,
        expires_at=now + timedelta(days=settings.STRIKE_TTL_DAYS),
        created_at=now,
    )
    session.add(strike)
    await session.flush()

    logger.info("strike_issued", strike_id=strike.id, reviewer_user_id=reviewer_user_id, reason=reason)
    return strike


async def get_active_strike_count(
    session: AsyncSession, reviewer_user_id: str, now: Optional[datetime] = None
) -> int:
    now = now or utcnow()
    result = await session.execute(
        select(func.count())
        .select_from(ReviewerStrike)
        .where(
            ReviewerStrike.reviewer_user_id == reviewer_user_id,
            ReviewerStrike.is_active.is_(True),
            ReviewerStrike.expires_at > now,
        )
    )
    return int(result.scalar_one() or 0)


async def decay_expired_strikes(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Deactivate every strike past its expiry. A repeat run touches nothing."""
    now = now or utcnow()
    result = await session.execute(
        update(ReviewerStrike)
        .where(
            ReviewerStrike.is_active.is_(True),
            ReviewerStrike.expires_at <= now,
        )
        .values(is_active=False)
        .returning(ReviewerStrike.id)
        .execution_options(synchronize_session=False)
    )
    decayed = len(result.all())
    if decayed:
        logger.info("strikes_decayed", count=decayed)
    return decayed


# ── Suspensions ──────────────────────────────────────────────

async def suspend_reviewer(
    session: AsyncSession, reviewer_user_id: str, now: Optional[datetime] = None
) -> ReviewerSuspension:
    """Suspend for a fixed window."""
    now = now or utcnow()
    suspension = ReviewerSuspension(
        id=new_id("suspension"),
        reviewer_user_id=reviewer_user_id,
        is_active=True,
        lifted_at=now + timedelta(days=settings.SUSPENSION_DAYS),
        created_at=now,
    )
    session.add(suspension)
    await session.flush()

    logger.warning(
        "reviewer_suspended",
        suspension_id=suspension.id,
        reviewer_user_id=reviewer_user_id,
        lifted_at=str(suspension.lifted_at),
    )
    return suspension


async def is_suspended(
    session: AsyncSession, reviewer_user_id: str, now: Optional[datetime] = None
) -> bool:
    now = now or utcnow()
    result = await session.execute(
        select(func.count())
        .select_from(ReviewerSuspension)
        .where(
            ReviewerSuspension.reviewer_user_id == reviewer_user_id,
            ReviewerSuspension.is_active.is_(True),
            ReviewerSuspension.lifted_at > now,
        )
    )
    return (result.scalar_one() or 0) > 0


# ── Aggregate ────────────────────────────────────────────────

async def get_reputation(
    session: AsyncSession, user_id: str, now: Optional[datetime] = None
) -> ReviewerReputation:
    """Average rating is None, not 0, for a reviewer nobody has rated yet."""
    result = await session.execute(
        select(func.avg(ReviewerRating.score), func.count(ReviewerRating.id))
        .join(FeedbackReview, FeedbackReview.id == ReviewerRating.review_id)
        .where(FeedbackReview.reviewer_user_id == user_id)
    )
    avg_score, total = result.one()

    return ReviewerReputation(
        user_id=user_id,
        average_rating=round(float(avg_score), 2) if avg_score is not None else None,
        total_reviews=int(total or 0),
        active_strike_count=await get_active_strike_count(session, user_id, now=now),
        is_suspended=await is_suspended(session, user_id, now=now),
    )
