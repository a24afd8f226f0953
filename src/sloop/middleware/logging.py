"""Structured logging configuration with structlog.

Services log through the standard library (``logging.getLogger(__name__)``)
while the middleware uses structlog directly. Both are rendered by one
structlog formatter on the root handler, so a service log line carries the
``request_id`` and ``user_id`` bound by ``RequestIdMiddleware``.
"""

import logging

import structlog

from sloop.config import Settings

SERVICE_NAME = "sloop"

# Libraries that log every statement or poll at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "arq.worker", "arq.jobs", "httpx")


def _service_context(environment: str) -> structlog.types.Processor:
    def add_service(_logger, _method, event_dict):
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service


def setup_logging(settings: Settings) -> None:
    """Route structlog and stdlib records through one JSON or console renderer."""
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings.environment),
    ]

    if settings.log_format == "json":
        rendering = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        rendering = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *rendering],
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    if not settings.debug:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
