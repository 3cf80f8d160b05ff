"""
Tests for dispute filing and resolution.
"""

import pytest

from feedback_exchange.exchange import disputes, ledger, listings, policy, reputation, reviews
from feedback_exchange.models.enums import DisputeStatus


@pytest.fixture
async def review(session, funded, listing_request, submit_request):
    await funded("owner")
    listing = await policy.post_listing(session, "owner", listing_request())
    _, claimed = await listings.claim_listing(session, listing.id, "reviewer")
    return await reviews.submit_review(session, claimed.id, submit_request())


class TestCreateDispute:

    async def test_open_dispute(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "Copy-pasted feedback")
        assert dispute.id.startswith("dispute_")
        assert dispute.status == DisputeStatus.OPEN.value
        assert dispute.filed_by_user_id == "owner"

    async def test_one_dispute_per_filer(self, session, review):
        assert await disputes.create_dispute(session, review.id, "owner", "first") is not None
        assert await disputes.create_dispute(session, review.id, "owner", "again") is None

    async def test_each_party_may_file(self, session, review):
        assert await disputes.create_dispute(session, review.id, "owner", "low effort") is not None
        assert await disputes.create_dispute(session, review.id, "reviewer", "unfair") is not None
        rows, total = await disputes.list_disputes(session)
        assert total == 2


class TestDisputeTransitions:

    async def test_mark_under_review_once(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        moved = await disputes.mark_dispute_under_review(session, dispute.id)
        assert moved.status == DisputeStatus.UNDER_REVIEW.value
        assert await disputes.mark_dispute_under_review(session, dispute.id) is None

    async def test_resolve_from_open(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        resolved = await disputes.resolve_dispute(
            session, dispute.id, "moderator", DisputeStatus.DISMISSED.value, "Looks fine"
        )
        assert resolved.status == DisputeStatus.DISMISSED.value
        assert resolved.resolved_by_user_id == "moderator"
        assert resolved.resolution_note == "Looks fine"

    async def test_resolved_dispute_is_final(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        await disputes.resolve_dispute(session, dispute.id, "moderator", "dismissed", "")
        assert await disputes.resolve_dispute(session, dispute.id, "moderator", "upheld", "") is None
        assert (await disputes.get_dispute(session, dispute.id)).status == "dismissed"

    async def test_resolve_to_non_outcome(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        with pytest.raises(ValueError):
            await disputes.resolve_dispute(session, dispute.id, "moderator", "under_review", "")

    async def test_list_by_status(self, session, review):
        first = await disputes.create_dispute(session, review.id, "owner", "a")
        await disputes.create_dispute(session, review.id, "reviewer", "b")
        await disputes.mark_dispute_under_review(session, first.id)

        rows, total = await disputes.list_disputes(session, status="under_review")
        assert total == 1
        assert rows[0].id == first.id


class TestSettleDispute:

    async def test_upheld_strikes_and_refunds(self, session, review):
        assert await ledger.get_balance(session, "owner") == 2
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")

        settled = await policy.settle_dispute(session, dispute.id, "moderator", "upheld", "Agreed")
        assert settled.status == DisputeStatus.UPHELD.value
        assert await reputation.get_active_strike_count(session, "reviewer") == 1
        assert await ledger.get_balance(session, "owner") == 3

    async def test_dismissed_changes_nothing_else(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        await policy.settle_dispute(session, dispute.id, "moderator", "dismissed", "")
        assert await reputation.get_active_strike_count(session, "reviewer") == 0
        assert await ledger.get_balance(session, "owner") == 2

    async def test_upheld_reviewer_dispute_penalizes_nobody(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "reviewer", "Owner rated unfairly")
        settled = await policy.settle_dispute(session, dispute.id, "moderator", "upheld", "")
        assert settled.status == DisputeStatus.UPHELD.value
        assert await reputation.get_active_strike_count(session, "reviewer") == 0
        assert await ledger.get_balance(session, "owner") == 2

    async def test_both_parties_upheld_refunds_fee_once(self, session, review):
        owner_before = await ledger.get_balance(session, "owner")
        by_owner = await disputes.create_dispute(session, review.id, "owner", "low effort")
        by_reviewer = await disputes.create_dispute(session, review.id, "reviewer", "unfair")

        await policy.settle_dispute(session, by_owner.id, "moderator", "upheld", "")
        await policy.settle_dispute(session, by_reviewer.id, "moderator", "upheld", "")

        assert await ledger.get_balance(session, "owner") == owner_before + 1
        assert await reputation.get_active_strike_count(session, "reviewer") == 1
        refund = await ledger.get_transaction_by_idempotency_key(
            session, f"dispute_refund_{review.id}"
        )
        assert refund.reference_id == by_owner.id

    async def test_settling_twice_refunds_once(self, session, review):
        dispute = await disputes.create_dispute(session, review.id, "owner", "low effort")
        await policy.settle_dispute(session, dispute.id, "moderator", "upheld", "")
        assert await policy.settle_dispute(session, dispute.id, "moderator", "upheld", "") is None
        assert await ledger.get_balance(session, "owner") == 3
