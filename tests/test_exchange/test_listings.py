"""
Tests for the listing lifecycle and its reapers.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from feedback_exchange.exchange import ledger, listings, policy, reviews
from feedback_exchange.exchange.ledger import InsufficientTokensError
from feedback_exchange.models.database import utcnow
from feedback_exchange.models.enums import ListingStatus, ReviewStatus
from feedback_exchange.models.tables import FeedbackReview, ReviewReclaim
from feedback_exchange.schemas.listings import ListingFilters


class TestCreateListing:

    async def test_new_listing_is_open_with_ttl(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        assert listing.id.startswith("listing_")
        assert listing.status == ListingStatus.OPEN.value
        assert listing.claimed_by_user_id is None
        assert listing.review_deadline is None
        assert listing.expires_at - listing.created_at == timedelta(days=30)

    async def test_post_listing_escrows_fee(self, session, funded, listing_request):
        await funded("owner")
        listing = await policy.post_listing(session, "owner", listing_request())
        assert await ledger.get_balance(session, "owner") == 2
        escrow = await ledger.get_transaction_by_idempotency_key(
            session, f"listing_escrow_{listing.id}"
        )
        assert escrow is not None
        assert escrow.reference_id == listing.id

    async def test_post_listing_without_tokens(self, session, listing_request):
        with pytest.raises(InsufficientTokensError):
            await policy.post_listing(session, "broke_owner", listing_request())


class TestListListings:

    async def test_filters_and_total(self, session, listing_request):
        await listings.create_listing(session, "owner", listing_request(genre="drama"))
        await listings.create_listing(session, "owner", listing_request(genre="drama"))
        await listings.create_listing(session, "other", listing_request(genre="comedy"))

        rows, total = await listings.list_listings(session, ListingFilters(genre="drama", limit=1))
        assert total == 2
        assert len(rows) == 1

        rows, total = await listings.list_listings(session, ListingFilters(owner_user_id="other"))
        assert total == 1
        assert rows[0].genre == "comedy"

    async def test_status_filter(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer")

        rows, total = await listings.list_listings(session, ListingFilters(status="claimed"))
        assert total == 1
        assert rows[0].id == listing.id


class TestClaimListing:

    async def test_claim_opens_review(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        claimed = await listings.claim_listing(session, listing.id, "reviewer")
        assert claimed is not None
        claimed_listing, review = claimed

        assert claimed_listing.status == ListingStatus.CLAIMED.value
        assert claimed_listing.claimed_by_user_id == "reviewer"
        assert claimed_listing.review_deadline - claimed_listing.updated_at == timedelta(days=7)
        assert review.status == ReviewStatus.IN_PROGRESS.value
        assert review.reviewer_user_id == "reviewer"
        assert review.listing_id == listing.id

    async def test_second_claim_loses(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        assert await listings.claim_listing(session, listing.id, "reviewer_1") is not None
        assert await listings.claim_listing(session, listing.id, "reviewer_2") is None

    async def test_claim_missing_listing(self, session):
        assert await listings.claim_listing(session, "listing_missing", "reviewer") is None

    async def test_concurrent_claims_have_one_winner(self, session_factory, listing_request):
        async with session_factory() as s:
            listing = await listings.create_listing(s, "owner", listing_request())
            await s.commit()

        async def attempt(reviewer_user_id):
            async with session_factory() as s:
                result = await listings.claim_listing(s, listing.id, reviewer_user_id)
                await s.commit()
                return result

        results = await asyncio.gather(attempt("reviewer_1"), attempt("reviewer_2"))
        winners = [r for r in results if r is not None]
        assert len(winners) == 1

        async with session_factory() as s:
            count = (
                await s.execute(
                    select(func.count())
                    .select_from(FeedbackReview)
                    .where(FeedbackReview.listing_id == listing.id)
                )
            ).scalar_one()
            assert count == 1
            fresh = await listings.get_listing(s, listing.id)
            assert fresh.claimed_by_user_id == winners[0][1].reviewer_user_id


class TestCancelListing:

    async def test_owner_cancels_open_listing(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        cancelled = await listings.cancel_listing(session, listing.id, "owner")
        assert cancelled.status == ListingStatus.CANCELLED.value

    async def test_non_owner_cannot_cancel(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        assert await listings.cancel_listing(session, listing.id, "intruder") is None
        assert (await listings.get_listing(session, listing.id)).status == ListingStatus.OPEN.value

    async def test_claimed_listing_cannot_be_cancelled(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer")
        assert await listings.cancel_listing(session, listing.id, "owner") is None

    async def test_cancel_refunds_fee(self, session, funded, listing_request):
        await funded("owner")
        listing = await policy.post_listing(session, "owner", listing_request())
        assert await ledger.get_balance(session, "owner") == 2

        await policy.cancel_listing_with_refund(session, listing.id, "owner")
        assert await ledger.get_balance(session, "owner") == 3
        # Cancelled listings cannot be re-cancelled for a second refund
        assert await policy.cancel_listing_with_refund(session, listing.id, "owner") is None
        assert await ledger.get_balance(session, "owner") == 3


class TestExpireStaleListings:

    async def test_expires_open_listings_past_ttl(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        later = utcnow() + timedelta(days=31)

        assert await listings.expire_stale_listings(session, now=later) == 1
        assert (await listings.get_listing(session, listing.id)).status == ListingStatus.EXPIRED.value
        assert await listings.expire_stale_listings(session, now=later) == 0

    async def test_fresh_listings_untouched(self, session, listing_request):
        await listings.create_listing(session, "owner", listing_request())
        assert await listings.expire_stale_listings(session) == 0

    async def test_claimed_listings_never_expire(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer")
        later = utcnow() + timedelta(days=31)
        assert await listings.expire_stale_listings(session, now=later) == 0


class TestReclaimOverdueReviews:

    async def test_overdue_review_reopens_listing(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        _, review = await listings.claim_listing(session, listing.id, "reviewer")
        later = utcnow() + timedelta(days=8)

        assert await listings.reclaim_overdue_reviews(session, now=later) == 1

        fresh = await listings.get_listing(session, listing.id)
        assert fresh.status == ListingStatus.OPEN.value
        assert fresh.claimed_by_user_id is None
        assert fresh.review_deadline is None
        assert await reviews.get_review(session, review.id) is None

        audit = (await session.execute(select(ReviewReclaim))).scalars().all()
        assert [(a.listing_id, a.reviewer_user_id, a.review_id) for a in audit] == [
            (listing.id, "reviewer", review.id)
        ]

    async def test_reclaimed_reviewer_counts_as_duplicate(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer")
        await listings.reclaim_overdue_reviews(session, now=utcnow() + timedelta(days=8))

        assert await reviews.has_duplicate_review(session, listing.id, "reviewer") is True
        assert await reviews.has_duplicate_review(session, listing.id, "someone_else") is False

    async def test_submitted_review_untouched(self, session, listing_request, submit_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        _, review = await listings.claim_listing(session, listing.id, "reviewer")
        await reviews.submit_review(session, review.id, submit_request())

        assert await listings.reclaim_overdue_reviews(session, now=utcnow() + timedelta(days=8)) == 0
        fresh = await listings.get_listing(session, listing.id)
        assert fresh.status == ListingStatus.CLAIMED.value
        assert (await reviews.get_review(session, review.id)).status == ReviewStatus.SUBMITTED.value

    async def test_within_deadline_untouched(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer")
        assert await listings.reclaim_overdue_reviews(session, now=utcnow() + timedelta(days=6)) == 0

    async def test_reopened_listing_can_be_claimed_again(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        await listings.claim_listing(session, listing.id, "reviewer_1")
        await listings.reclaim_overdue_reviews(session, now=utcnow() + timedelta(days=8))

        claimed = await listings.claim_listing(session, listing.id, "reviewer_2")
        assert claimed is not None
        assert claimed[0].claimed_by_user_id == "reviewer_2"
