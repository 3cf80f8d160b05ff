"""
/api/v1/disputes endpoints.
Moderator-facing queue and resolution of disputed reviews.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.notifications import (
    NotificationEvent,
    NotificationPublisher,
    publish_safely,
)
from feedback_exchange.dependencies import (
    get_db,
    get_notification_publisher,
    require_moderator,
    verify_api_key,
)
from feedback_exchange.exchange import disputes, policy
from feedback_exchange.models.enums import DisputeStatus, NotificationEventType
from feedback_exchange.observability.metrics import disputes_total
from feedback_exchange.schemas.disputes import (
    DisputeEnvelope,
    DisputeListResponse,
    DisputeResolveRequest,
    DisputeResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/disputes", tags=["disputes"], dependencies=[Depends(verify_api_key)])


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    status_filter: Optional[DisputeStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    rows, total = await disputes.list_disputes(
        session,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return DisputeListResponse(
        disputes=[DisputeResponse.model_validate(row) for row in rows],
        total=total,
    )


@router.get("/{dispute_id}", response_model=DisputeEnvelope)
async def get_dispute(
    dispute_id: str,
    session: AsyncSession = Depends(get_db),
):
    dispute = await disputes.get_dispute(session, dispute_id)
    if not dispute:
        raise HTTPException(status_code=404, detail="dispute_not_found")
    return DisputeEnvelope(dispute=DisputeResponse.model_validate(dispute))


@router.post("/{dispute_id}/review", response_model=DisputeEnvelope)
async def start_dispute_review(
    dispute_id: str,
    auth_user_id: str = Depends(require_moderator),
    session: AsyncSession = Depends(get_db),
):
    """A moderator picks the dispute up: open → under_review."""
    existing = await disputes.get_dispute(session, dispute_id)
    if not existing:
        raise HTTPException(status_code=404, detail="dispute_not_found")

    dispute = await disputes.mark_dispute_under_review(session, dispute_id)
    if dispute is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="dispute_not_resolvable")
    await session.commit()
    disputes_total.labels(status=DisputeStatus.UNDER_REVIEW.value).inc()
    logger.info("dispute_review_started", dispute_id=dispute_id, moderator_user_id=auth_user_id)

    return DisputeEnvelope(dispute=DisputeResponse.model_validate(dispute))


@router.post("/{dispute_id}/resolve", response_model=DisputeEnvelope)
async def resolve_dispute(
    dispute_id: str,
    body: DisputeResolveRequest,
    auth_user_id: str = Depends(require_moderator),
    session: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    """
    Close the dispute. An upheld owner-filed dispute strikes the reviewer and
    refunds the listing owner in the same transaction as the status change.
    """
    existing = await disputes.get_dispute(session, dispute_id)
    if not existing:
        raise HTTPException(status_code=404, detail="dispute_not_found")

    dispute = await policy.settle_dispute(
        session, dispute_id, auth_user_id, body.status, body.resolution_note
    )
    if dispute is None:
        await session.rollback()
        raise HTTPException(status_code=409, detail="dispute_not_resolvable")
    await session.commit()

    await publish_safely(
        publisher,
        NotificationEvent(
            event_type=NotificationEventType.DISPUTE_RESOLVED,
            actor_user_id=auth_user_id,
            target_user_id=dispute.filed_by_user_id,
            resource_type="feedback_dispute",
            resource_id=dispute_id,
            payload={"reviewId": dispute.review_id, "status": dispute.status},
        ),
    )

    return DisputeEnvelope(dispute=DisputeResponse.model_validate(dispute))
