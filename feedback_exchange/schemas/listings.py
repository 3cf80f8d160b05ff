"""
Pydantic request/response schemas for the /api/v1/listings endpoints.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime

from feedback_exchange.schemas.reviews import ReviewResponse


# ── Request Schemas ──────────────────────────────────────────

class ListingCreateRequest(BaseModel):
    """Body for posting a feedback request."""
    project_id: str = Field(min_length=1, max_length=64)
    script_id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    genre: str = Field(min_length=1, max_length=64)
    format: str = Field(min_length=1, max_length=64)
    page_count: int = Field(ge=1, le=1000)


class ListingFilters(BaseModel):
    """Query parameters for listing feedback requests."""
    status: Optional[Literal["open", "claimed", "cancelled", "expired"]] = None
    genre: Optional[str] = None
    format: Optional[str] = None
    owner_user_id: Optional[str] = None
    limit: int = Field(default=30, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


# ── Response Schemas ─────────────────────────────────────────

class ListingResponse(BaseModel):
    id: str
    owner_user_id: str
    project_id: str
    script_id: str
    title: str
    description: str
    genre: str
    format: str
    page_count: int
    status: str
    claimed_by_user_id: Optional[str] = None
    review_deadline: Optional[datetime] = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ListingEnvelope(BaseModel):
    listing: ListingResponse


class ListingListResponse(BaseModel):
    """Paginated listing response."""
    listings: list[ListingResponse]
    total: int
    limit: int
    offset: int


class ClaimResponse(BaseModel):
    """A successful claim always comes with its freshly opened review."""
    listing: ListingResponse
    review: ReviewResponse
