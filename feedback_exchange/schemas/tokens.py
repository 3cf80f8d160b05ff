"""
Pydantic request/response schemas for the /api/v1/tokens endpoints.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class TokenTransactionResponse(BaseModel):
    """Single immutable ledger entry."""
    id: str
    idempotency_key: str
    debit_user_id: str
    credit_user_id: str
    amount: int
    reason: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    user_id: str
    balance: int


class TransactionListResponse(BaseModel):
    transactions: list[TokenTransactionResponse]
    total: int


class SignupGrantResponse(BaseModel):
    transaction: TokenTransactionResponse
