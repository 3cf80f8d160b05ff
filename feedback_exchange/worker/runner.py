"""
Worker entry point.
Run with: python -m feedback_exchange.worker.runner
"""

import structlog
from redis import Redis
from rq import Queue, Worker

from feedback_exchange.config import settings
from feedback_exchange.observability.logging import configure_logging
from feedback_exchange.worker.jobs import schedule_maintenance

logger = structlog.get_logger(__name__)


def main():
    """Seed the maintenance cycle and start the RQ worker with its scheduler."""
    configure_logging("worker")

    conn = Redis.from_url(settings.REDIS_URL)
    queue = Queue(settings.QUEUE_NAME, connection=conn)
    schedule_maintenance(queue, delay_seconds=0)

    worker = Worker(
        queues=[queue],
        connection=conn,
        name=f"feedback-maintenance-{settings.APP_VERSION}",
    )

    logger.info("worker_starting", queue=settings.QUEUE_NAME)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
