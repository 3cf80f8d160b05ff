"""
FastAPI dependency injection.
Provides DB sessions, collaborator clients, API key validation and the
acting user resolved by the gateway.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_exchange.clients.identity import IdentityClient
from feedback_exchange.clients.notifications import NotificationPublisher
from feedback_exchange.clients.script_storage import ScriptStorageClient
from feedback_exchange.config import settings
from feedback_exchange.models.database import get_session


# ── Singleton instances ──────────────────────────────────────
_publisher: Optional[NotificationPublisher] = None
_script_storage: Optional[ScriptStorageClient] = None
_identity: Optional[IdentityClient] = None


def get_notification_publisher() -> NotificationPublisher:
    global _publisher
    if _publisher is None:
        _publisher = NotificationPublisher()
    return _publisher


def get_script_storage() -> ScriptStorageClient:
    global _script_storage
    if _script_storage is None:
        _script_storage = ScriptStorageClient()
    return _script_storage


def get_identity_client() -> IdentityClient:
    global _identity
    if _identity is None:
        _identity = IdentityClient()
    return _identity


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield an async DB session."""
    async for session in get_session():
        yield session


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


async def get_auth_user_id(
    x_auth_user_id: Optional[str] = Header(None, alias="X-Auth-User-Id"),
) -> str:
    """The gateway authenticates and forwards the acting user id."""
    if not x_auth_user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return x_auth_user_id


async def require_moderator(
    auth_user_id: str = Depends(get_auth_user_id),
) -> str:
    """
    Acting user must be listed in MODERATOR_USER_IDS.
    If it is not set, every authenticated user passes (dev mode).
    """
    if settings.MODERATOR_USER_IDS is None:
        return auth_user_id

    moderators = {uid.strip() for uid in settings.MODERATOR_USER_IDS.split(",") if uid.strip()}
    if auth_user_id not in moderators:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="moderator_required")
    return auth_user_id
