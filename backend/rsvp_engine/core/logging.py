"""
Structured logging configuration using structlog.

Every engine log line is an event name plus key/value context
(event_id, user_id, attendee_id, position, ...). The request middleware
binds request-scoped keys through contextvars; this module adds the
service-wide ones and picks a renderer per environment:

    production   JSON, one object per line
    test         plain key=value, no colour, so pytest output stays readable
    otherwise    structlog's console renderer
"""

import logging
import sys
import structlog
from rsvp_engine.core.config import get_settings

# Driver loggers that are chatty at INFO and carry nothing the engine does not log itself
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


def _add_service_context(logger, method_name: str, event_dict: dict) -> dict:
    settings = get_settings()
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("version", settings.APP_VERSION)
    return event_dict


def _select_renderer(environment: str):
    if environment == "production":
        return structlog.processors.JSONRenderer()
    if environment == "test":
        return structlog.processors.KeyValueRenderer(key_order=["event", "event_id", "user_id"], drop_missing=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.ENVIRONMENT == "production":
        shared_processors.append(_add_service_context)
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _select_renderer(settings.ENVIRONMENT),
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    # Replace rather than append: the lifespan may run more than once per process in tests
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    quiet_level = logging.INFO if settings.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
