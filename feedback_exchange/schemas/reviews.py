"""
Pydantic request/response schemas for reviews and ratings.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


# ── Request Schemas ──────────────────────────────────────────

class RubricDimension(BaseModel):
    score: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=5000)


class Rubric(BaseModel):
    """All four dimensions are required."""
    story_structure: RubricDimension
    characters: RubricDimension
    dialogue: RubricDimension
    craft_voice: RubricDimension


class ReviewSubmitRequest(BaseModel):
    rubric: Rubric
    overall_comment: str = Field(default="", max_length=10000)


class RatingCreateRequest(BaseModel):
    score: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=2000)


# ── Response Schemas ─────────────────────────────────────────

class ReviewResponse(BaseModel):
    id: str
    listing_id: str
    reviewer_user_id: str
    score_story_structure: Optional[int] = None
    comment_story_structure: Optional[str] = None
    score_characters: Optional[int] = None
    comment_characters: Optional[str] = None
    score_dialogue: Optional[int] = None
    comment_dialogue: Optional[str] = None
    score_craft_voice: Optional[int] = None
    comment_craft_voice: Optional[str] = None
    overall_comment: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewEnvelope(BaseModel):
    review: ReviewResponse


class RatingResponse(BaseModel):
    id: str
    review_id: str
    rater_user_id: str
    score: int
    comment: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RatingEnvelope(BaseModel):
    rating: RatingResponse
