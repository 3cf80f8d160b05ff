"""
/api/v1/reputation endpoints.
Aggregate reputation plus the explicit abuse-control actions.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.identity import IdentityClient
from feedback_exchange.dependencies import (
    get_db,
    get_identity_client,
    require_moderator,
    verify_api_key,
)
from feedback_exchange.exchange import policy, reputation
from feedback_exchange.observability.metrics import suspensions_total
from feedback_exchange.schemas.reputation import (
    ReviewerReputation,
    StrikeCreateRequest,
    StrikeOutcome,
    StrikeResponse,
    SuspensionResponse,
    SuspensionStatusResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/reputation", tags=["reputation"], dependencies=[Depends(verify_api_key)])


async def _require_user(identity: IdentityClient, user_id: str) -> None:
    if not await identity.user_exists(user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")


@router.get("/{user_id}", response_model=ReviewerReputation)
async def get_reputation(
    user_id: str,
    session: AsyncSession = Depends(get_db),
):
    return await reputation.get_reputation(session, user_id)


@router.post("/{user_id}/strikes", response_model=StrikeOutcome, status_code=status.HTTP_201_CREATED)
async def issue_strike(
    user_id: str,
    body: StrikeCreateRequest,
    auth_user_id: str = Depends(require_moderator),
    session: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    """Manual strike; escalates to a suspension at the configured threshold."""
    await _require_user(identity, user_id)

    result = await policy.apply_strike(session, user_id, body.reason, source="manual")
    await session.commit()
    logger.info("manual_strike_issued", reviewer_user_id=user_id, issued_by=auth_user_id)

    return StrikeOutcome(
        strike=StrikeResponse.model_validate(result.strike),
        active_strike_count=result.active_strike_count,
        suspension=SuspensionResponse.model_validate(result.suspension) if result.suspension else None,
    )


@router.post("/{user_id}/suspend", response_model=SuspensionResponse, status_code=status.HTTP_201_CREATED)
async def suspend_reviewer(
    user_id: str,
    auth_user_id: str = Depends(require_moderator),
    session: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    await _require_user(identity, user_id)

    suspension = await reputation.suspend_reviewer(session, user_id)
    await session.commit()
    suspensions_total.inc()
    logger.info("manual_suspension", reviewer_user_id=user_id, issued_by=auth_user_id)

    return SuspensionResponse.model_validate(suspension)


@router.get("/{user_id}/suspension", response_model=SuspensionStatusResponse)
async def get_suspension_status(
    user_id: str,
    session: AsyncSession = Depends(get_db),
):
    return SuspensionStatusResponse(
        user_id=user_id,
        is_suspended=await reputation.is_suspended(session, user_id),
    )
