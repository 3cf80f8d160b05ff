"""
Tests for review submission and the reviewer payout.
"""

import pytest

from feedback_exchange.exchange import ledger, listings, policy, reviews
from feedback_exchange.models.enums import ReviewStatus


@pytest.fixture
async def claimed_review(session, listing_request):
    listing = await listings.create_listing(session, "owner", listing_request())
    _, review = await listings.claim_listing(session, listing.id, "reviewer")
    return review


class TestSubmitReview:

    async def test_submit_stores_rubric(self, session, claimed_review, submit_request):
        review = await reviews.submit_review(
            session, claimed_review.id, submit_request(score=5, overall_comment="Ready to shop.")
        )
        assert review.status == ReviewStatus.SUBMITTED.value
        assert review.score_story_structure == 5
        assert review.score_characters == 5
        assert review.score_dialogue == 5
        assert review.score_craft_voice == 5
        assert review.comment_dialogue == "notes"
        assert review.overall_comment == "Ready to shop."

    async def test_second_submit_rejected(self, session, claimed_review, submit_request):
        assert await reviews.submit_review(session, claimed_review.id, submit_request()) is not None
        assert await reviews.submit_review(session, claimed_review.id, submit_request(score=1)) is None
        fresh = await reviews.get_review(session, claimed_review.id)
        assert fresh.score_dialogue == 4

    async def test_submit_missing_review(self, session, submit_request):
        assert await reviews.submit_review(session, "review_missing", submit_request()) is None


class TestSubmitWithPayout:

    async def test_reviewer_paid_once(self, session, claimed_review, submit_request):
        review = await policy.submit_review_with_payout(
            session, claimed_review.id, "reviewer", submit_request()
        )
        assert review is not None
        assert await ledger.get_balance(session, "reviewer") == 1

        again = await policy.submit_review_with_payout(
            session, claimed_review.id, "reviewer", submit_request()
        )
        assert again is None
        assert await ledger.get_balance(session, "reviewer") == 1

        payout = await ledger.get_transaction_by_idempotency_key(
            session, f"listing_payout_{claimed_review.id}"
        )
        assert payout.reason == "listing_payout"


class TestReviewLookups:

    async def test_get_review_by_listing(self, session, claimed_review):
        found = await reviews.get_review_by_listing(session, claimed_review.listing_id)
        assert found.id == claimed_review.id

    async def test_get_review_by_listing_without_claim(self, session, listing_request):
        listing = await listings.create_listing(session, "owner", listing_request())
        assert await reviews.get_review_by_listing(session, listing.id) is None

    async def test_duplicate_review_detection(self, session, claimed_review):
        listing_id = claimed_review.listing_id
        assert await reviews.has_duplicate_review(session, listing_id, "reviewer") is True
        assert await reviews.has_duplicate_review(session, listing_id, "stranger") is False
