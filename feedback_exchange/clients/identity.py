"""
Identity service client: answers "does this user exist".
When IDENTITY_SERVICE_URL is unset every user id is accepted (dev mode),
mirroring how the API key check behaves.
"""

from typing import Optional

import aiohttp
import structlog

from feedback_exchange.config import settings

logger = structlog.get_logger(__name__)


class IdentityClient:

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: Optional[float] = None):
        url = base_url if base_url is not None else settings.IDENTITY_SERVICE_URL
        self.base_url = url.rstrip("/") if url else None
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)

    async def user_exists(self, user_id: str) -> bool:
        """404 means no such user; any other error status propagates."""
        if self.base_url is None:
            return True

        async with aiohttp.ClientSession(timeout=self.timeout) as http:
            async with http.get(f"{self.base_url}/internal/users/{user_id}") as response:
                if response.status == 404:
                    logger.info("identity_user_missing", user_id=user_id)
                    return False
                response.raise_for_status()
                return True
