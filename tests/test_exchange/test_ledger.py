"""
Tests for the double-entry token ledger.
"""

import pytest
from sqlalchemy import select

from feedback_exchange.exchange import ledger
from feedback_exchange.models.enums import TokenReason
from feedback_exchange.models.tables import SYSTEM_USER_ID, TokenTransaction


async def _all_accounts(session):
    rows = (await session.execute(select(TokenTransaction))).scalars().all()
    accounts = set()
    for row in rows:
        accounts.update((row.debit_user_id, row.credit_user_id))
    return accounts


class TestSignupGrant:

    async def test_grant_credits_three_tokens(self, session):
        txn = await ledger.ensure_signup_grant(session, "user_a")
        assert txn.amount == 3
        assert txn.debit_user_id == SYSTEM_USER_ID
        assert txn.credit_user_id == "user_a"
        assert txn.reason == TokenReason.SIGNUP_GRANT.value
        assert await ledger.get_balance(session, "user_a") == 3

    async def test_grant_is_idempotent(self, session):
        first = await ledger.ensure_signup_grant(session, "user_a")
        second = await ledger.ensure_signup_grant(session, "user_a")
        assert first.id == second.id
        assert await ledger.get_balance(session, "user_a") == 3
        assert len(await ledger.list_transactions(session, "user_a")) == 1

    async def test_grant_idempotent_across_sessions(self, session_factory):
        async with session_factory() as s1:
            first = await ledger.ensure_signup_grant(s1, "user_a")
            await s1.commit()
        async with session_factory() as s2:
            second = await ledger.ensure_signup_grant(s2, "user_a")
            await s2.commit()
            assert second.id == first.id
            assert await ledger.get_balance(s2, "user_a") == 3


class TestCreateTransaction:

    async def test_rejects_non_positive_amount(self, session):
        with pytest.raises(ValueError):
            await ledger.create_transaction(session, "k1", "SYSTEM", "user_a", 0, TokenReason.REFUND)
        with pytest.raises(ValueError):
            await ledger.create_transaction(session, "k2", "SYSTEM", "user_a", -1, TokenReason.REFUND)

    async def test_rejects_same_account_on_both_sides(self, session):
        with pytest.raises(ValueError):
            await ledger.create_transaction(session, "k1", "user_a", "user_a", 1, TokenReason.REFUND)

    async def test_rejects_unknown_reason(self, session):
        with pytest.raises(ValueError):
            await ledger.create_transaction(session, "k1", "SYSTEM", "user_a", 1, "gift")

    async def test_replayed_key_returns_original_row(self, session):
        first = await ledger.create_transaction(
            session, "refund_1", SYSTEM_USER_ID, "user_a", 2, TokenReason.REFUND
        )
        replay = await ledger.create_transaction(
            session, "refund_1", SYSTEM_USER_ID, "user_a", 5, TokenReason.REFUND
        )
        assert replay.id == first.id
        assert replay.amount == 2
        assert await ledger.get_balance(session, "user_a") == 2

    async def test_reference_is_recorded(self, session):
        txn = await ledger.credit_user(
            session,
            user_id="user_a",
            amount=1,
            reason=TokenReason.LISTING_PAYOUT,
            idempotency_key="listing_payout_review_1",
            reference_type="review",
            reference_id="review_1",
        )
        assert txn.reference_type == "review"
        assert txn.reference_id == "review_1"


class TestDebit:

    async def test_debit_moves_tokens_to_system(self, session, funded):
        await funded("user_a")
        txn = await ledger.debit_user(
            session, "user_a", 1, TokenReason.LISTING_ESCROW, "listing_escrow_l1"
        )
        assert txn.debit_user_id == "user_a"
        assert txn.credit_user_id == SYSTEM_USER_ID
        assert await ledger.get_balance(session, "user_a") == 2

    async def test_insufficient_balance_raises(self, session):
        with pytest.raises(ledger.InsufficientTokensError) as exc_info:
            await ledger.debit_user(
                session, "broke_user", 1, TokenReason.LISTING_ESCROW, "listing_escrow_l1"
            )
        assert exc_info.value.balance == 0
        assert exc_info.value.required == 1
        assert await ledger.get_balance(session, "broke_user") == 0

    async def test_replayed_debit_does_not_check_balance_again(self, session, funded):
        await funded("user_a")
        first = await ledger.debit_user(session, "user_a", 3, TokenReason.LISTING_ESCROW, "escrow_x")
        replay = await ledger.debit_user(session, "user_a", 3, TokenReason.LISTING_ESCROW, "escrow_x")
        assert replay.id == first.id
        assert await ledger.get_balance(session, "user_a") == 0


class TestConservation:

    async def test_balances_sum_to_zero_including_system(self, session, funded):
        await funded("user_a", "user_b")
        await ledger.debit_user(session, "user_a", 1, TokenReason.LISTING_ESCROW, "escrow_1")
        await ledger.credit_user(session, "user_b", 1, TokenReason.LISTING_PAYOUT, "payout_1")
        await ledger.credit_user(session, "user_a", 1, TokenReason.REFUND, "refund_1")

        accounts = await _all_accounts(session)
        assert SYSTEM_USER_ID in accounts
        total = 0
        for account in accounts:
            total += await ledger.get_balance(session, account)
        assert total == 0

    async def test_system_may_run_negative(self, session, funded):
        await funded("user_a", "user_b")
        assert await ledger.get_balance(session, SYSTEM_USER_ID) == -6

    async def test_unknown_user_has_zero_balance(self, session):
        assert await ledger.get_balance(session, "nobody") == 0


class TestListTransactions:

    async def test_includes_both_sides(self, session, funded):
        await funded("user_a")
        await ledger.debit_user(session, "user_a", 1, TokenReason.LISTING_ESCROW, "escrow_1")
        txns = await ledger.list_transactions(session, "user_a")
        keys = {t.idempotency_key for t in txns}
        assert keys == {"signup_grant_user_a", "escrow_1"}

    async def test_other_users_rows_excluded(self, session, funded):
        await funded("user_a", "user_b")
        txns = await ledger.list_transactions(session, "user_b")
        assert [t.credit_user_id for t in txns] == ["user_b"]
