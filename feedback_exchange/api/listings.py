"""
/api/v1/listings endpoints.
Posting, browsing, claiming and cancelling feedback requests.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.notifications import (
    NotificationEvent,
    NotificationPublisher,
    publish_safely,
)
from feedback_exchange.clients.script_storage import ScriptStorageClient, approve_viewer_safely
from feedback_exchange.config import settings
from feedback_exchange.dependencies import (
    get_auth_user_id,
    get_db,
    get_notification_publisher,
    get_script_storage,
    verify_api_key,
)
from feedback_exchange.exchange import listings, policy, reputation, reviews
from feedback_exchange.exchange.ledger import InsufficientTokensError
from feedback_exchange.models.enums import ListingStatus, NotificationEventType
from feedback_exchange.observability.metrics import listing_claims_total
from feedback_exchange.schemas.listings import (
    ClaimResponse,
    ListingCreateRequest,
    ListingEnvelope,
    ListingFilters,
    ListingListResponse,
    ListingResponse,
)
from feedback_exchange.schemas.reviews import ReviewEnvelope, ReviewResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/listings", tags=["listings"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=ListingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreateRequest,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
):
    """Post a listing; the fee is escrowed in the same transaction."""
    try:
        listing = await policy.post_listing(session, auth_user_id, body)
    except InsufficientTokensError as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"code": "insufficient_tokens", "balance": e.balance, "required": e.required},
        )
    await session.commit()

    return ListingEnvelope(listing=ListingResponse.model_validate(listing))


@router.get("", response_model=ListingListResponse)
async def list_listings(
    status_filter: Optional[ListingStatus] = Query(None, alias="status"),
    genre: Optional[str] = Query(None),
    format: Optional[str] = Query(None),
    owner_user_id: Optional[str] = Query(None),
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    """List listings with optional filtering and pagination."""
    filters = ListingFilters(
        status=status_filter.value if status_filter else None,
        genre=genre,
        format=format,
        owner_user_id=owner_user_id,
        limit=limit,
        offset=offset,
    )
    rows, total = await listings.list_listings(session, filters)
    return ListingListResponse(
        listings=[ListingResponse.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{listing_id}", response_model=ListingEnvelope)
async def get_listing(
    listing_id: str,
    session: AsyncSession = Depends(get_db),
):
    listing = await listings.get_listing(session, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="listing_not_found")
    return ListingEnvelope(listing=ListingResponse.model_validate(listing))


@router.get("/{listing_id}/review", response_model=ReviewEnvelope)
async def get_listing_review(
    listing_id: str,
    session: AsyncSession = Depends(get_db),
):
    review = await reviews.get_review_by_listing(session, listing_id)
    if not review:
        raise HTTPException(status_code=404, detail="review_not_found")
    return ReviewEnvelope(review=ReviewResponse.model_validate(review))


@router.post("/{listing_id}/claim", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def claim_listing(
    listing_id: str,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
    script_storage: ScriptStorageClient = Depends(get_script_storage),
):
    """
    Claim an open listing. Eligibility is checked up front for clear errors;
    the conditional UPDATE inside claim_listing is what actually arbitrates
    between concurrent claimers.
    """
    listing = await listings.get_listing(session, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="listing_not_found")
    if listing.status != ListingStatus.OPEN.value:
        listing_claims_total.labels(outcome="not_open").inc()
        raise HTTPException(status_code=409, detail="listing_not_open")
    if listing.owner_user_id == auth_user_id:
        raise HTTPException(status_code=400, detail="cannot_review_own_listing")
    if await reputation.is_suspended(session, auth_user_id):
        listing_claims_total.labels(outcome="suspended").inc()
        raise HTTPException(status_code=403, detail="reviewer_suspended")
    if settings.BLOCK_REPEAT_CLAIMS and await reviews.has_duplicate_review(
        session, listing_id, auth_user_id
    ):
        listing_claims_total.labels(outcome="duplicate").inc()
        raise HTTPException(status_code=409, detail="duplicate_review")

    claimed = await listings.claim_listing(session, listing_id, auth_user_id)
    if claimed is None:
        await session.rollback()
        listing_claims_total.labels(outcome="lost_race").inc()
        raise HTTPException(status_code=409, detail="listing_not_open")
    await session.commit()
    listing_claims_total.labels(outcome="claimed").inc()

    claimed_listing, review = claimed

    # Side effects after commit; neither may undo the claim
    await approve_viewer_safely(
        script_storage, claimed_listing.script_id, auth_user_id, claimed_listing.owner_user_id
    )
    await publish_safely(
        publisher,
        NotificationEvent(
            event_type=NotificationEventType.LISTING_CLAIMED,
            actor_user_id=auth_user_id,
            target_user_id=claimed_listing.owner_user_id,
            resource_type="feedback_listing",
            resource_id=listing_id,
            payload={"reviewId": review.id},
        ),
    )

    return ClaimResponse(
        listing=ListingResponse.model_validate(claimed_listing),
        review=ReviewResponse.model_validate(review),
    )


@router.post("/{listing_id}/cancel", response_model=ListingEnvelope)
async def cancel_listing(
    listing_id: str,
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
):
    """Owner cancels an open listing and gets the escrowed fee back."""
    listing = await listings.get_listing(session, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="listing_not_found")
    if listing.owner_user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="forbidden")
    if listing.status != ListingStatus.OPEN.value:
        raise HTTPException(status_code=409, detail="listing_not_cancellable")

    cancelled = await policy.cancel_listing_with_refund(session, listing_id, auth_user_id)
    if cancelled is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="listing_not_cancellable")
    await session.commit()

    return ListingEnvelope(listing=ListingResponse.model_validate(cancelled))
