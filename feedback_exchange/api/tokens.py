"""
/api/v1/tokens endpoints.
Balances, ledger history and the one-time signup grant.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.identity import IdentityClient
from feedback_exchange.dependencies import (
    get_auth_user_id,
    get_db,
    get_identity_client,
    verify_api_key,
)
from feedback_exchange.exchange import ledger
from feedback_exchange.schemas.tokens import (
    BalanceResponse,
    SignupGrantResponse,
    TokenTransactionResponse,
    TransactionListResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/tokens", tags=["tokens"], dependencies=[Depends(verify_api_key)])


@router.get("/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(
    user_id: str,
    session: AsyncSession = Depends(get_db),
):
    """Current balance, recomputed from the ledger."""
    balance = await ledger.get_balance(session, user_id)
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get("/{user_id}/transactions", response_model=TransactionListResponse)
async def list_transactions(
    user_id: str,
    session: AsyncSession = Depends(get_db),
):
    txns = await ledger.list_transactions(session, user_id)
    return TransactionListResponse(
        transactions=[TokenTransactionResponse.model_validate(t) for t in txns],
        total=len(txns),
    )


@router.post("/grant-signup", response_model=SignupGrantResponse, status_code=status.HTTP_201_CREATED)
async def grant_signup(
    auth_user_id: str = Depends(get_auth_user_id),
    session: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    """Idempotent: every call for the same user returns the same transaction."""
    if not await identity.user_exists(auth_user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")

    txn = await ledger.ensure_signup_grant(session, auth_user_id)
    await session.commit()

    return SignupGrantResponse(transaction=TokenTransactionResponse.model_validate(txn))
