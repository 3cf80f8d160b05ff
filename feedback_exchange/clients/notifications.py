"""
Notification publisher.
Posts marketplace events to the notification service. Delivery is
fire-and-forget from the engine's point of view: callers use publish_safely(),
which logs failures instead of retrying inline.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

import aiohttp
import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from feedback_exchange.config import settings
from feedback_exchange.models.database import utcnow
from feedback_exchange.models.enums import NotificationEventType
from feedback_exchange.observability.metrics import collaborator_failures_total

logger = structlog.get_logger(__name__)


class NotificationEvent(BaseModel):
    """Event envelope; serialized camelCase for the notification service."""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: NotificationEventType
    occurred_at: datetime = Field(default_factory=utcnow)
    actor_user_id: Optional[str] = None
    target_user_id: str
    resource_type: str
    resource_id: str
    payload: dict[str, Any] = {}

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationPublishError(Exception):
    """Raised when the notification service rejects an event."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"notification_publish_failed status={status} body={body[:200]}")


class NotificationPublisher:
    """HTTP publisher for the notification service."""

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self.base_url = (base_url or settings.NOTIFICATION_SERVICE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)

    async def publish(self, event: NotificationEvent) -> None:
        body = event.model_dump(mode="json", by_alias=True)
        async with aiohttp.ClientSession(timeout=self.timeout) as http:
            async with http.post(f"{self.base_url}/internal/events", json=body) as response:
                text = await response.text()
                if response.status >= 400:
                    raise NotificationPublishError(response.status, text)

        logger.info(
            "notification_published",
            event_id=event.event_id,
            event_type=event.event_type.value,
            resource_id=event.resource_id,
        )


async def publish_safely(publisher: NotificationPublisher, event: NotificationEvent) -> bool:
    """Publish and swallow delivery failures; the transition is already committed."""
    try:
        await publisher.publish(event)
        return True
    except Exception as e:
        collaborator_failures_total.labels(collaborator="notifications", operation="publish").inc()
        logger.warning(
            "notification_publish_failed",
            event_type=event.event_type.value,
            resource_id=event.resource_id,
            error=str(e),
        )
        return False
