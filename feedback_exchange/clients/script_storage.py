"""
Script storage client.
After a successful claim the reviewer is approved as a viewer of the
manuscript. The call is fire-and-forget: a failure never undoes the claim.
"""

from typing import Optional

import aiohttp
import structlog

from feedback_exchange.config import settings
from feedback_exchange.observability.metrics import collaborator_failures_total

logger = structlog.get_logger(__name__)


class ScriptStorageError(Exception):
    """Raised when script storage rejects a viewer approval."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"approve_viewer_failed status={status} body={body[:200]}")


class ScriptStorageClient:

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self.base_url = (base_url or settings.SCRIPT_STORAGE_SERVICE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)

    async def approve_viewer(self, script_id: str, viewer_user_id: str, owner_user_id: str) -> None:
        url = f"{self.base_url}/internal/scripts/{script_id}/approved-viewers"
        async with aiohttp.ClientSession(timeout=self.timeout) as http:
            async with http.post(
                url,
                json={"viewerUserId": viewer_user_id, "ownerUserId": owner_user_id},
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    raise ScriptStorageError(response.status, text)

        logger.info("script_viewer_approved", script_id=script_id, viewer_user_id=viewer_user_id)


async def approve_viewer_safely(
    client: ScriptStorageClient, script_id: str, viewer_user_id: str, owner_user_id: str
) -> bool:
    try:
        await client.approve_viewer(script_id, viewer_user_id, owner_user_id)
        return True
    except Exception as e:
        collaborator_failures_total.labels(collaborator="script_storage", operation="approve_viewer").inc()
        logger.warning(
            "approve_viewer_failed",
            script_id=script_id,
            viewer_user_id=viewer_user_id,
            error=str(e),
        )
        return False
