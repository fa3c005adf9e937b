"""Logging setup: structlog events and stdlib records through one handler.

Engine modules log structured events with structlog; workers, alembic and
third-party libraries log through stdlib ``logging``. Both are rendered by
the same ``ProcessorFormatter``, so a deployment reads one JSON (or
console) stream with request ids and timestamps on every line.
"""

import logging
import logging.config

import structlog

from applytrak.config import Settings

# Applied to structlog events and to stdlib records alike.
_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _render_chain(log_format: str) -> list[structlog.types.Processor]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def setup_logging(settings: Settings) -> None:
    """Configure structlog and route stdlib logging through the same renderer."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    *_render_chain(settings.log_format),
                ],
                "foreign_pre_chain": _SHARED_PROCESSORS,
            },
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "structured"},
        },
        "root": {"level": settings.log_level.upper(), "handlers": ["default"]},
        "loggers": {
            # SQL echo stays off unless debugging the engine itself.
            "sqlalchemy.engine": {"level": "DEBUG" if settings.debug else "WARNING"},
            "uvicorn.access": {"level": "INFO", "handlers": [], "propagate": True},
        },
    })
