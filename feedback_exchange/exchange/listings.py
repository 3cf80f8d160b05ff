"""
Listing lifecycle.

    open ──claim──▶ claimed ──reclaim (overdue)──▶ open
    open ──cancel──▶ cancelled
    open ──expire──▶ expired

Every transition is a single conditional UPDATE keyed on the current status;
whoever gets a row back won. No version column, no application locks.
A claimed listing stays claimed once its review is submitted.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.config import settings
from feedback_exchange.models.database import utcnow
from feedback_exchange.models.enums import ListingStatus, ReviewStatus
from feedback_exchange.models.tables import (
    FeedbackListing,
    FeedbackReview,
    ReviewReclaim,
    new_id,
)
from feedback_exchange.schemas.listings import ListingCreateRequest, ListingFilters

logger = structlog.get_logger(__name__)


async def create_listing(
    session: AsyncSession,
    owner_user_id: str,
    data: ListingCreateRequest,
    listing_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FeedbackListing:
    """Post an open listing with a fixed posting TTL."""
    now = now or utcnow()
    listing = FeedbackListing(
        id=listing_id or new_id("listing"),
        owner_user_id=owner_user_id,
        project_id=data.project_id,
        script_id=data.script_id,
        title=data.title,
        description=data.description,
        genre=data.genre,
        format=data.format,
        page_count=data.page_count,
        status=ListingStatus.OPEN.value,
        expires_at=now + timedelta(days=settings.LISTING_TTL_DAYS),
        created_at=now,
        updated_at=now,
    )
    session.add(listing)
    await session.flush()

    logger.info("listing_created", listing_id=listing.id, owner_user_id=owner_user_id)
    return listing


async def get_listing(session: AsyncSession, listing_id: str) -> Optional[FeedbackListing]:
    return await session.get(FeedbackListing, listing_id, populate_existing=True)


async def list_listings(
    session: AsyncSession, filters: ListingFilters
) -> tuple[list[FeedbackListing], int]:
    """Filtered page of listings, newest first, plus the unpaginated total."""
    query = select(FeedbackListing)

    if filters.status:
        query = query.where(FeedbackListing.status == filters.status)
    if filters.genre:
        query = query.where(FeedbackListing.genre == filters.genre)
    if filters.format:
        query = query.where(FeedbackListing.format == filters.format)
    if filters.owner_user_id:
        query = query.where(FeedbackListing.owner_user_id == filters.owner_user_id)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count_query)).scalar() or 0

    query = (
        query.order_by(FeedbackListing.created_at.desc(), FeedbackListing.id)
        .offset(filters.offset)
        .limit(filters.limit)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def claim_listing(
    session: AsyncSession,
    listing_id: str,
    claimer_user_id: str,
    now: Optional[datetime] = None,
) -> Optional[tuple[FeedbackListing, FeedbackReview]]:
    """
    Compare-and-swap open → claimed and open the reviewer's review.

    Returns None when the listing was not open at the moment of the UPDATE;
    concurrent claimers all issue the same statement and exactly one gets
    the row back. Caller commits the claim and the review together.
    """
    now = now or utcnow()
    stmt = (
        update(FeedbackListing)
        .where(
            FeedbackListing.id == listing_id,
            FeedbackListing.status == ListingStatus.OPEN.value,
        )
        .values(
            status=ListingStatus.CLAIMED.value,
            claimed_by_user_id=claimer_user_id,
            review_deadline=now + timedelta(days=settings.REVIEW_WINDOW_DAYS),
            updated_at=now,
        )
        .returning(FeedbackListing)
        .execution_options(populate_existing=True)
    )
    listing = (await session.scalars(stmt)).one_or_none()
    if listing is None:
        logger.info("claim_conflict", listing_id=listing_id, claimer_user_id=claimer_user_id)
        return None

    review = FeedbackReview(
        id=new_id("review"),
        listing_id=listing_id,
        reviewer_user_id=claimer_user_id,
        status=ReviewStatus.IN_PROGRESS.value,
        created_at=now,
        updated_at=now,
    )
    session.add(review)
    await session.flush()

    logger.info(
        "listing_claimed",
        listing_id=listing_id,
        review_id=review.id,
        claimer_user_id=claimer_user_id,
        review_deadline=str(listing.review_deadline),
    )
    return listing, review


async def cancel_listing(
    session: AsyncSession,
    listing_id: str,
    owner_user_id: str,
    now: Optional[datetime] = None,
) -> Optional[FeedbackListing]:
    """Owner-only, and only while open. Claimed listings run their course."""
    now = now or utcnow()
    stmt = (
        update(FeedbackListing)
        .where(
            FeedbackListing.id == listing_id,
            FeedbackListing.owner_user_id == owner_user_id,
            FeedbackListing.status == ListingStatus.OPEN.value,
        )
        .values(status=ListingStatus.CANCELLED.value, updated_at=now)
        .returning(FeedbackListing)
        .execution_options(populate_existing=True)
    )
    listing = (await session.scalars(stmt)).one_or_none()
    if listing is not None:
        logger.info("listing_cancelled", listing_id=listing_id, owner_user_id=owner_user_id)
    return listing


async def expire_stale_listings(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Batch open → expired for listings past their posting TTL."""
    now = now or utcnow()
    result = await session.execute(
        update(FeedbackListing)
        .where(
            FeedbackListing.status == ListingStatus.OPEN.value,
            FeedbackListing.expires_at < now,
        )
        .values(status=ListingStatus.EXPIRED.value, updated_at=now)
        .returning(FeedbackListing.id)
        .execution_options(synchronize_session=False)
    )
    expired = len(result.all())
    if expired:
        logger.info("stale_listings_expired", count=expired)
    return expired


async def reclaim_overdue_reviews(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Reopen claimed listings whose review deadline passed without a submission.

    Per listing: delete the in-progress review first, and reopen the listing
    only if that delete hit a row. A reviewer submitting at the same moment
    either wins (delete matches nothing, listing left alone) or loses (their
    conditional submit matches nothing). Submitted reviews are never deleted.
    """
    now = now or utcnow()
    has_open_review = exists().where(
        FeedbackReview.listing_id == FeedbackListing.id,
        FeedbackReview.status == ReviewStatus.IN_PROGRESS.value,
    )
    overdue = await session.execute(
        select(FeedbackListing.id)
        .where(
            FeedbackListing.status == ListingStatus.CLAIMED.value,
            FeedbackListing.review_deadline < now,
            has_open_review,
        )
        .order_by(FeedbackListing.review_deadline)
    )
    listing_ids = list(overdue.scalars().all())

    reclaimed = 0
    for listing_id in listing_ids:
        deleted = await session.execute(
            delete(FeedbackReview)
            .where(
                FeedbackReview.listing_id == listing_id,
                FeedbackReview.status == ReviewStatus.IN_PROGRESS.value,
            )
            .returning(FeedbackReview.id, FeedbackReview.reviewer_user_id)
            .execution_options(synchronize_session=False)
        )
        removed = deleted.all()
        if not removed:
            continue

        await session.execute(
            update(FeedbackListing)
            .where(
                FeedbackListing.id == listing_id,
                FeedbackListing.status == ListingStatus.CLAIMED.value,
            )
            .values(
                status=ListingStatus.OPEN.value,
                claimed_by_user_id=None,
                review_deadline=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        for review_id, reviewer_user_id in removed:
            session.add(
                ReviewReclaim(
                    listing_id=listing_id,
                    reviewer_user_id=reviewer_user_id,
                    review_id=review_id,
                    reclaimed_at=now,
                )
            )
            logger.info(
                "overdue_review_reclaimed",
                listing_id=listing_id,
                review_id=review_id,
                reviewer_user_id=reviewer_user_id,
            )
        reclaimed += 1

    await session.flush()
    if reclaimed:
        logger.info("overdue_reviews_reclaimed", count=reclaimed)
    return reclaimed
