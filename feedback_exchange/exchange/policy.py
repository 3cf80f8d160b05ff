"""
Marketplace policy layered over the lifecycle primitives.

Ties token movements to listing/review transitions and escalates strikes into
suspensions. Every function runs inside the caller's transaction and never
commits; the caller commits once so a transition and its ledger entry land
together or not at all.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.config import settings
from feedback_exchange.exchange import disputes, ledger, listings, reputation, reviews
from feedback_exchange.models.enums import DisputeStatus, TokenReason
from feedback_exchange.models.tables import (
    FeedbackDispute,
    FeedbackListing,
    FeedbackReview,
    ReviewerRating,
    ReviewerStrike,
    ReviewerSuspension,
    new_id,
)
from feedback_exchange.observability.metrics import (
    disputes_total,
    listings_created_total,
    ratings_created_total,
    reviews_submitted_total,
    strikes_issued_total,
    suspensions_total,
)
from feedback_exchange.schemas.listings import ListingCreateRequest
from feedback_exchange.schemas.reviews import ReviewSubmitRequest

logger = structlog.get_logger(__name__)


@dataclass
class StrikeResult:
    strike: ReviewerStrike
    active_strike_count: int
    suspension: Optional[ReviewerSuspension] = None


async def post_listing(
    session: AsyncSession, owner_user_id: str, data: ListingCreateRequest
) -> FeedbackListing:
    """
    Escrow the listing fee and post the listing.
    Raises ledger.InsufficientTokensError if the owner cannot pay.
    """
    listing_id = new_id("listing")
    await ledger.debit_user(
        session,
        user_id=owner_user_id,
        amount=settings.LISTING_FEE_TOKENS,
        reason=TokenReason.LISTING_ESCROW,
        idempotency_key=f"listing_escrow_{listing_id}",
        reference_type="listing",
        reference_id=listing_id,
    )
    listing = await listings.create_listing(session, owner_user_id, data, listing_id=listing_id)
    listings_created_total.inc()
    return listing


async def cancel_listing_with_refund(
    session: AsyncSession, listing_id: str, owner_user_id: str
) -> Optional[FeedbackListing]:
    listing = await listings.cancel_listing(session, listing_id, owner_user_id)
    if listing is None:
        return None

    await ledger.credit_user(
        session,
        user_id=owner_user_id,
        amount=settings.LISTING_FEE_TOKENS,
        reason=TokenReason.REFUND,
        idempotency_key=f"cancel_refund_{listing_id}",
        reference_type="listing",
        reference_id=listing_id,
    )
    return listing


async def submit_review_with_payout(
    session: AsyncSession, review_id: str, reviewer_user_id: str, data: ReviewSubmitRequest
) -> Optional[FeedbackReview]:
    """Close the review and release the reviewer's reward."""
    review = await reviews.submit_review(session, review_id, data)
    if review is None:
        return None

    await ledger.credit_user(
        session,
        user_id=reviewer_user_id,
        amount=settings.REVIEW_REWARD_TOKENS,
        reason=TokenReason.LISTING_PAYOUT,
        idempotency_key=f"listing_payout_{review_id}",
        reference_type="review",
        reference_id=review_id,
    )
    reviews_submitted_total.inc()
    return review


async def apply_strike(
    session: AsyncSession, reviewer_user_id: str, reason: str, source: str
) -> StrikeResult:
    """Issue a strike and suspend once active strikes reach the threshold."""
    strike = await reputation.issue_strike(session, reviewer_user_id, reason)
    strikes_issued_total.labels(source=source).inc()

    count = await reputation.get_active_strike_count(session, reviewer_user_id)
    suspension = None
    if count >= settings.STRIKES_BEFORE_SUSPENSION and not await reputation.is_suspended(
        session, reviewer_user_id
    ):
        suspension = await reputation.suspend_reviewer(session, reviewer_user_id)
        suspensions_total.inc()
        logger.warning(
            "reviewer_auto_suspended",
            reviewer_user_id=reviewer_user_id,
            active_strike_count=count,
        )
    return StrikeResult(strike=strike, active_strike_count=count, suspension=suspension)


async def rate_review(
    session: AsyncSession,
    review: FeedbackReview,
    rater_user_id: str,
    score: int,
    comment: str,
) -> Optional[ReviewerRating]:
    """Record the rating; a low score also strikes the reviewer."""
    rating = await reputation.create_rating(session, review.id, rater_user_id, score, comment)
    if rating is None:
        return None
    ratings_created_total.labels(score=str(score)).inc()

    if score <= settings.LOW_RATING_STRIKE_THRESHOLD:
        await apply_strike(
            session,
            review.reviewer_user_id,
            f"Low rating ({score}/5) on review {review.id}",
            source="low_rating",
        )
    return rating


async def settle_dispute(
    session: AsyncSession,
    dispute_id: str,
    resolved_by_user_id: str,
    status: str,
    resolution_note: str,
) -> Optional[FeedbackDispute]:
    """
    Resolve a dispute. Upholding an owner-filed dispute strikes the reviewer
    and refunds the listing owner's fee, both inside the same transaction.
    An upheld reviewer-filed dispute only closes the dispute.

    The refund is keyed on the review, so one escrowed fee is returned at
    most once however many disputes on that review are upheld.
    """
    dispute = await disputes.resolve_dispute(
        session, dispute_id, resolved_by_user_id, status, resolution_note
    )
    if dispute is None:
        return None
    disputes_total.labels(status=status).inc()

    if status != DisputeStatus.UPHELD.value:
        return dispute

    review = await reviews.get_review(session, dispute.review_id)
    if review is None:
        logger.warning("upheld_dispute_review_missing", dispute_id=dispute_id, review_id=dispute.review_id)
        return dispute

    listing = await listings.get_listing(session, review.listing_id)
    if listing is None or dispute.filed_by_user_id != listing.owner_user_id:
        logger.info("upheld_dispute_no_penalty", dispute_id=dispute_id, filed_by=dispute.filed_by_user_id)
        return dispute

    await apply_strike(
        session,
        review.reviewer_user_id,
        f"Dispute {dispute_id} upheld against reviewer",
        source="dispute",
    )
    await ledger.credit_user(
        session,
        user_id=listing.owner_user_id,
        amount=settings.DISPUTE_REFUND_TOKENS,
        reason=TokenReason.REFUND,
        idempotency_key=f"dispute_refund_{review.id}",
        reference_type="dispute",
        reference_id=dispute_id,
    )
    return dispute
