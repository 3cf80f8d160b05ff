"""
structlog setup shared by the API process and the maintenance worker.
Each line carries the app name, version and process role so API and worker
output can share one log stream.
"""

import logging
import sys

import structlog

from feedback_exchange.config import settings

# stdlib loggers that drown out exchange events at INFO
_CHATTY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "aiohttp.access": logging.WARNING,
    "rq.worker": logging.INFO,
}


def service_context(role: str):
    """Processor stamping every event with where it came from."""
    def _add(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("version", settings.APP_VERSION)
        event_dict.setdefault("role", role)
        return event_dict
    return _add


def configure_logging(role: str = "api") -> None:
    """Route structlog and stdlib logging through one stdout handler."""
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        service_context(role),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in _CHATTY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DB_ECHO else logging.WARNING
    )
