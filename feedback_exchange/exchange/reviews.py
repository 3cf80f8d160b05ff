"""
Review lifecycle: in_progress → submitted (terminal).
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.models.database import utcnow
from feedback_exchange.models.enums import ReviewStatus
from feedback_exchange.models.tables import FeedbackReview, ReviewReclaim
from feedback_exchange.schemas.reviews import ReviewSubmitRequest

logger = structlog.get_logger(__name__)


async def get_review(session: AsyncSession, review_id: str) -> Optional[FeedbackReview]:
    return await session.get(FeedbackReview, review_id, populate_existing=True)


async def get_review_by_listing(session: AsyncSession, listing_id: str) -> Optional[FeedbackReview]:
    """Most recent review bound to the listing."""
    result = await session.execute(
        select(FeedbackReview)
        .where(FeedbackReview.listing_id == listing_id)
        .order_by(FeedbackReview.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def submit_review(
    session: AsyncSession,
    review_id: str,
    data: ReviewSubmitRequest,
    now: Optional[datetime] = None,
) -> Optional[FeedbackReview]:
    """
    Write the rubric and close the review in one conditional UPDATE.
    Returns None unless the review was in_progress at that moment.
    """
    now = now or utcnow()
    rubric = data.rubric
    stmt = (
        update(FeedbackReview)
        .where(
            FeedbackReview.id == review_id,
            FeedbackReview.status == ReviewStatus.IN_PROGRESS.value,
        )
        .values(
            score_story_structure=rubric.story_structure.score,
            comment_story_structure=rubric.story_structure.comment,
            score_characters=rubric.characters.score,
            comment_characters=rubric.characters.comment,
            score_dialogue=rubric.dialogue.score,
            comment_dialogue=rubric.dialogue.comment,
            score_craft_voice=rubric.craft_voice.score,
            comment_craft_voice=rubric.craft_voice.comment,
            overall_comment=data.overall_comment,
            status=ReviewStatus.SUBMITTED.value,
            updated_at=now,
        )
        .returning(FeedbackReview)
        .execution_options(populate_existing=True)
    )
    review = (await session.scalars(stmt)).one_or_none()
    if review is None:
        logger.info("review_not_submittable", review_id=review_id)
        return None

    logger.info("review_submitted", review_id=review_id, listing_id=review.listing_id)
    return review


async def has_duplicate_review(
    session: AsyncSession, listing_id: str, reviewer_user_id: str
) -> bool:
    """True if the reviewer ever held a review on this listing, reaped ones included."""
    live = (
        select(func.count())
        .select_from(FeedbackReview)
        .where(
            FeedbackReview.listing_id == listing_id,
            FeedbackReview.reviewer_user_id == reviewer_user_id,
        )
        .scalar_subquery()
    )
    reaped = (
        select(func.count())
        .select_from(ReviewReclaim)
        .where(
            ReviewReclaim.listing_id == listing_id,
            ReviewReclaim.reviewer_user_id == reviewer_user_id,
        )
        .scalar_subquery()
    )
    result = await session.execute(select(live + reaped))
    return (result.scalar_one() or 0) > 0
