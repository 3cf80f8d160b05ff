"""
Pydantic schemas for reviewer reputation and abuse control.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ReviewerReputation(BaseModel):
    """Derived on every read; never stored."""
    user_id: str
    average_rating: Optional[float] = None
    total_reviews: int = 0
    active_strike_count: int = 0
    is_suspended: bool = False


class StrikeCreateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class StrikeResponse(BaseModel):
    id: str
    reviewer_user_id: str
    reason: str
    is_active: bool
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class SuspensionResponse(BaseModel):
    id: str
    reviewer_user_id: str
    is_active: bool
    lifted_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class StrikeOutcome(BaseModel):
    """Strike plus any suspension it escalated into."""
    strike: StrikeResponse
    active_strike_count: int
    suspension: Optional[SuspensionResponse] = None


class SuspensionStatusResponse(BaseModel):
    user_id: str
    is_suspended: bool
