"""
/api/v1/reviews endpoints.
Submitting reviews, rating them, and filing disputes against them.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.notifications import (
    NotificationEvent,
    NotificationPublisher,
    publish_safely,
)
from feedback_exchange.dependencies import (
    get_auth_user_id,
    get_db,
    get_notification_publisher,
    verify_api_key,
)
from feedback_exchange.exchange import disputes, listings, policy, reputation, reviews
from feedback_exchange.models.enums import NotificationEventType, ReviewStatus
from feedback_exchange.observability.metrics import disputes_total
from feedback_exchange.schemas.disputes import DisputeCreateRequest, DisputeEnvelope, DisputeResponse
from feedback_exchange.schemas.reviews import (
    RatingCreateRequest,
    RatingEnvelope,
    RatingResponse,
    ReviewEnvelope,
    ReviewResponse,
    ReviewSubmitRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"], dependencies=[Depends(verify_api_key)])


@router.get("/{review_id}", response_model=ReviewEnvelope)
async def get_review(
    review_id: str,
    session: AsyncSession = Depends(get_db),
):
    review = await reviews.get_review(session, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="review_not_found")
    return ReviewEnvelope(review=ReviewResponse.model_validate(review))


@router.post("/{review_id}/submit", response_model=ReviewEnvelope)
async def submit_review(
    review_id: str,
    body: ReviewSubmitRequest,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Submit the rubric; the reviewer is paid in the same transaction."""
    review = await reviews.get_review(session, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="review_not_found")
    if review.reviewer_user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="forbidden")

    submitted = await policy.submit_review_with_payout(session, review_id, auth_user_id, body)
    if submitted is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="review_not_submittable")
    await session.commit()

    listing = await listings.get_listing(session, submitted.listing_id)
    if listing:
        await publish_safely(
            publisher,
            NotificationEvent(
                event_type=NotificationEventType.REVIEW_SUBMITTED,
                actor_user_id=auth_user_id,
                target_user_id=listing.owner_user_id,
                resource_type="feedback_review",
                resource_id=review_id,
                payload={"listingId": listing.id},
            ),
        )

    return ReviewEnvelope(review=ReviewResponse.model_validate(submitted))


@router.post("/{review_id}/rate", response_model=RatingEnvelope, status_code=status.HTTP_201_CREATED)
async def rate_review(
    review_id: str,
    body: RatingCreateRequest,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
):
    """Only the listing owner may rate, once, and only a submitted review."""
    review = await reviews.get_review(session, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="review_not_found")
    if review.status != ReviewStatus.SUBMITTED.value:
        raise HTTPException(status_code=409, detail="review_not_submitted")

    listing = await listings.get_listing(session, review.listing_id)
    if not listing or listing.owner_user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="forbidden")

    rating = await policy.rate_review(session, review, auth_user_id, body.score, body.comment)
    if rating is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="already_rated")
    await session.commit()

    return RatingEnvelope(rating=RatingResponse.model_validate(rating))


@router.get("/{review_id}/rating", response_model=RatingEnvelope)
async def get_review_rating(
    review_id: str,
    session: AsyncSession = Depends(get_db),
):
    rating = await reputation.get_rating_by_review(session, review_id)
    if not rating:
        raise HTTPException(status_code=404, detail="rating_not_found")
    return RatingEnvelope(rating=RatingResponse.model_validate(rating))


@router.post("/{review_id}/dispute", response_model=DisputeEnvelope, status_code=status.HTTP_201_CREATED)
async def dispute_review(
    review_id: str,
    body: DisputeCreateRequest,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """Either party to a submitted review may dispute it, once each."""
    review = await reviews.get_review(session, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="review_not_found")

    listing = await listings.get_listing(session, review.listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="listing_not_found")
    if auth_user_id not in (listing.owner_user_id, review.reviewer_user_id):
        raise HTTPException(status_code=403, detail="forbidden")
    if review.status != ReviewStatus.SUBMITTED.value:
        raise HTTPException(status_code=409, detail="review_not_submitted")

    dispute = await disputes.create_dispute(session, review_id, auth_user_id, body.reason)
    if dispute is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="dispute_already_filed")
    await session.commit()
    disputes_total.labels(status="open").inc()

    target_user_id = (
        review.reviewer_user_id if auth_user_id == listing.owner_user_id else listing.owner_user_id
    )
    await publish_safely(
        publisher,
        NotificationEvent(
            event_type=NotificationEventType.DISPUTE_OPENED,
            actor_user_id=auth_user_id,
            target_user_id=target_user_id,
            resource_type="feedback_dispute",
            resource_id=dispute.id,
            payload={"reviewId": review_id},
        ),
    )

    return DisputeEnvelope(dispute=DisputeResponse.model_validate(dispute))
