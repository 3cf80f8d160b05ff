"""
Double-entry token ledger.

Every movement is one immutable row debiting one account and crediting another.
Balances are derived on every read as SUM(credits) - SUM(debits) and are never
stored. The SYSTEM account is the counterparty for grants, escrow, payouts and
refunds and may run negative.

The ledger itself does not enforce non-negative balances: callers debiting a
real user go through debit_user(), which checks the balance first.
"""

from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.config import settings
from feedback_exchange.models.database import insert_for, utcnow
from feedback_exchange.models.enums import TokenReason
from feedback_exchange.models.tables import SYSTEM_USER_ID, TokenTransaction, new_id
from feedback_exchange.observability.metrics import (
    ledger_insufficient_balance_total,
    ledger_transactions_total,
)

logger = structlog.get_logger(__name__)


class InsufficientTokensError(Exception):
    """Raised when a debit would take a real user's balance below zero."""

    def __init__(self, user_id: str, balance: int, required: int):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(f"{user_id} has {balance} tokens, needs {required}")


async def get_balance(session: AsyncSession, user_id: str) -> int:
    """Recompute a user's balance from the ledger."""
    credited = (
        select(func.coalesce(func.sum(TokenTransaction.amount), 0))
        .where(TokenTransaction.credit_user_id == user_id)
        .scalar_subquery()
    )
    debited = (
        select(func.coalesce(func.sum(TokenTransaction.amount), 0))
        .where(TokenTransaction.debit_user_id == user_id)
        .scalar_subquery()
    )
    result = await session.execute(select(credited - debited))
    return int(result.scalar_one() or 0)


async def get_transaction_by_idempotency_key(
    session: AsyncSession, key: str
) -> Optional[TokenTransaction]:
    result = await session.execute(
        select(TokenTransaction).where(TokenTransaction.idempotency_key == key)
    )
    return result.scalar_one_or_none()


async def list_transactions(session: AsyncSession, user_id: str) -> list[TokenTransaction]:
    """All entries touching the user on either side, newest first."""
    result = await session.execute(
        select(TokenTransaction)
        .where(
            or_(
                TokenTransaction.debit_user_id == user_id,
                TokenTransaction.credit_user_id == user_id,
            )
        )
        .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id)
    )
    return list(result.scalars().all())


async def create_transaction(
    session: AsyncSession,
    idempotency_key: str,
    debit_user_id: str,
    credit_user_id: str,
    amount: int,
    reason: TokenReason | str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> TokenTransaction:
    """
    Write one ledger row, at most once per idempotency key.

    A repeated key returns the original row. Two writers racing on the same
    key both end up with the winner's row: the insert is ON CONFLICT DO
    NOTHING against the unique index, followed by a read-back.
    """
    if amount <= 0:
        raise ValueError(f"Ledger amount must be positive, got {amount}")
    if debit_user_id == credit_user_id:
        raise ValueError("Ledger entry must move tokens between two accounts")

    reason_value = TokenReason(reason).value

    existing = await get_transaction_by_idempotency_key(session, idempotency_key)
    if existing is not None:
        logger.info("ledger_idempotent_replay", idempotency_key=idempotency_key, txn_id=existing.id)
        return existing

    stmt = (
        insert_for(session, TokenTransaction.__table__)
        .values(
            id=new_id("txn"),
            idempotency_key=idempotency_key,
            debit_user_id=debit_user_id,
            credit_user_id=credit_user_id,
            amount=amount,
            reason=reason_value,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["idempotency_key"])
    )
    result = await session.execute(stmt)

    txn = await get_transaction_by_idempotency_key(session, idempotency_key)
    if txn is None:
        raise RuntimeError(f"Ledger row missing after insert: {idempotency_key}")

    if result.rowcount:
        ledger_transactions_total.labels(reason=reason_value).inc()
        logger.info(
            "ledger_transaction_created",
            txn_id=txn.id,
            idempotency_key=idempotency_key,
            debit_user_id=debit_user_id,
            credit_user_id=credit_user_id,
            amount=amount,
            reason=reason_value,
        )
    return txn


async def _lock_account(session: AsyncSession, user_id: str) -> None:
    """
    Serialize concurrent debits of one user by locking their existing ledger rows.
    No-op on SQLite, which already serializes writers.
    """
    await session.execute(
        select(TokenTransaction.id)
        .where(
            or_(
                TokenTransaction.debit_user_id == user_id,
                TokenTransaction.credit_user_id == user_id,
            )
        )
        .with_for_update()
    )


async def debit_user(
    session: AsyncSession,
    user_id: str,
    amount: int,
    reason: TokenReason | str,
    idempotency_key: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> TokenTransaction:
    """Move tokens from a real user to SYSTEM after checking the balance."""
    existing = await get_transaction_by_idempotency_key(session, idempotency_key)
    if existing is not None:
        return existing

    await _lock_account(session, user_id)
    balance = await get_balance(session, user_id)
    if balance < amount:
        ledger_insufficient_balance_total.labels(reason=TokenReason(reason).value).inc()
        logger.info("ledger_insufficient_balance", user_id=user_id, balance=balance, required=amount)
        raise InsufficientTokensError(user_id, balance, amount)

    return await create_transaction(
        session,
        idempotency_key=idempotency_key,
        debit_user_id=user_id,
        credit_user_id=SYSTEM_USER_ID,
        amount=amount,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )


async def credit_user(
    session: AsyncSession,
    user_id: str,
    amount: int,
    reason: TokenReason | str,
    idempotency_key: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> TokenTransaction:
    """Move tokens from SYSTEM to a user."""
    return await create_transaction(
        session,
        idempotency_key=idempotency_key,
        debit_user_id=SYSTEM_USER_ID,
        credit_user_id=user_id,
        amount=amount,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )


async def ensure_signup_grant(session: AsyncSession, user_id: str) -> TokenTransaction:
    """Grant the signup bonus exactly once per user."""
    return await credit_user(
        session,
        user_id=user_id,
        amount=settings.SIGNUP_GRANT_TOKENS,
        reason=TokenReason.SIGNUP_GRANT,
        idempotency_key=f"signup_grant_{user_id}",
    )
