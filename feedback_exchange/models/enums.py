"""
Enum types for status and reason columns.
"""

import enum


class TokenReason(str, enum.Enum):
    SIGNUP_GRANT = "signup_grant"
    LISTING_ESCROW = "listing_escrow"
    LISTING_PAYOUT = "listing_payout"
    REFUND = "refund"


class ListingStatus(str, enum.Enum):
    OPEN = "open"
    CLAIMED = "claimed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReviewStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    UPHELD = "upheld"
    DISMISSED = "dismissed"


# Dispute states from which a resolution is still allowed
RESOLVABLE_DISPUTE_STATUSES = (DisputeStatus.OPEN.value, DisputeStatus.UNDER_REVIEW.value)

# Terminal outcomes a resolver may pick
DISPUTE_OUTCOMES = (DisputeStatus.UPHELD.value, DisputeStatus.DISMISSED.value)


class NotificationEventType(str, enum.Enum):
    LISTING_CLAIMED = "feedback_listing_claimed"
    REVIEW_SUBMITTED = "feedback_review_submitted"
    DISPUTE_OPENED = "feedback_dispute_opened"
    DISPUTE_RESOLVED = "feedback_dispute_resolved"
