"""
SQLAlchemy ORM models.
One table per entity; balances and reputation are derived, never stored.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from feedback_exchange.models.database import Base, utcnow


SYSTEM_USER_ID = "SYSTEM"


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def _id_column(prefix: str) -> Mapped[str]:
    return mapped_column(String(64), primary_key=True, default=lambda: new_id(prefix))


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


# ────────────────────────────────────────────────────────────
# TOKEN LEDGER
# ────────────────────────────────────────────────────────────
class TokenTransaction(Base):
    __tablename__ = "token_ledger"

    id: Mapped[str] = _id_column("txn")
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    debit_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    credit_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_token_ledger_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_token_ledger_amount_positive"),
        CheckConstraint("debit_user_id <> credit_user_id", name="ck_token_ledger_distinct_sides"),
        Index("idx_token_ledger_debit", "debit_user_id"),
        Index("idx_token_ledger_credit", "credit_user_id"),
    )


# ────────────────────────────────────────────────────────────
# LISTINGS
# ────────────────────────────────────────────────────────────
class FeedbackListing(Base):
    __tablename__ = "feedback_listings"

    id: Mapped[str] = _id_column("listing")
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    script_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    genre: Mapped[str] = mapped_column(String(64), nullable=False)
    format: Mapped[str] = mapped_column(String(64), nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    claimed_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    review_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'claimed', 'cancelled', 'expired')",
            name="ck_feedback_listings_status",
        ),
        CheckConstraint(
            "(status = 'claimed') = (claimed_by_user_id IS NOT NULL AND review_deadline IS NOT NULL)",
            name="ck_feedback_listings_claim_fields",
        ),
        Index("idx_feedback_listings_status_expires", "status", "expires_at"),
        Index("idx_feedback_listings_status_deadline", "status", "review_deadline"),
        Index("idx_feedback_listings_owner", "owner_user_id"),
        Index("idx_feedback_listings_created", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# REVIEWS
# ────────────────────────────────────────────────────────────
class FeedbackReview(Base):
    __tablename__ = "feedback_reviews"

    id: Mapped[str] = _id_column("review")
    listing_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("feedback_listings.id"), nullable=False
    )
    reviewer_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score_story_structure: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment_story_structure: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score_characters: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment_characters: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score_dialogue: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment_dialogue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score_craft_voice: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment_craft_voice: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    overall_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="in_progress")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint(
            "status IN ('in_progress', 'submitted')", name="ck_feedback_reviews_status"
        ),
        Index("idx_feedback_reviews_listing", "listing_id", "reviewer_user_id"),
        Index("idx_feedback_reviews_reviewer", "reviewer_user_id"),
    )


class ReviewReclaim(Base):
    """Audit row left behind when the overdue reaper deletes an in-progress review."""
    __tablename__ = "feedback_review_reclaims"

    id: Mapped[str] = _id_column("reclaim")
    listing_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("feedback_listings.id"), nullable=False
    )
    reviewer_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    review_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reclaimed_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_review_reclaims_listing", "listing_id", "reviewer_user_id"),
    )


# ────────────────────────────────────────────────────────────
# RATINGS
# ────────────────────────────────────────────────────────────
class ReviewerRating(Base):
    __tablename__ = "reviewer_ratings"

    id: Mapped[str] = _id_column("rating")
    review_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("feedback_reviews.id", ondelete="CASCADE"), nullable=False
    )
    rater_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("review_id", name="uq_reviewer_ratings_review"),
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_reviewer_ratings_score"),
    )


# ────────────────────────────────────────────────────────────
# ABUSE CONTROL
# ────────────────────────────────────────────────────────────
class ReviewerStrike(Base):
    __tablename__ = "reviewer_strikes"

    id: Mapped[str] = _id_column("strike")
    reviewer_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_reviewer_strikes_active", "reviewer_user_id", "is_active", "expires_at"),
    )


class ReviewerSuspension(Base):
    __tablename__ = "reviewer_suspensions"

    id: Mapped[str] = _id_column("suspension")
    reviewer_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lifted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_reviewer_suspensions_active", "reviewer_user_id", "is_active", "lifted_at"),
    )


# ────────────────────────────────────────────────────────────
# DISPUTES
# ────────────────────────────────────────────────────────────
class FeedbackDispute(Base):
    __tablename__ = "feedback_disputes"

    id: Mapped[str] = _id_column("dispute")
    review_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("feedback_reviews.id", ondelete="CASCADE"), nullable=False
    )
    filed_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("review_id", "filed_by_user_id", name="uq_feedback_disputes_filer"),
        CheckConstraint(
            "status IN ('open', 'under_review', 'upheld', 'dismissed')",
            name="ck_feedback_disputes_status",
        ),
        Index("idx_feedback_disputes_status", "status", "created_at"),
    )
