"""
Pydantic request/response schemas for the /api/v1/disputes endpoints.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime


class DisputeCreateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=5000)


class DisputeResolveRequest(BaseModel):
    status: Literal["upheld", "dismissed"]
    resolution_note: str = Field(default="", max_length=5000)


class DisputeResponse(BaseModel):
    id: str
    review_id: str
    filed_by_user_id: str
    reason: str
    status: str
    resolution_note: Optional[str] = None
    resolved_by_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DisputeEnvelope(BaseModel):
    dispute: DisputeResponse


class DisputeListResponse(BaseModel):
    disputes: list[DisputeResponse]
    total: int
