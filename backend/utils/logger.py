"""
LiveCoord Structured Logging Module.

Everything is logged to stderr through structlog; stdout belongs to
whatever embeds the coordinator.
Requires Python 3.11+.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from utils.config import get_settings

# Third-party loggers that would drown out reload events at INFO
QUIET_LOGGERS = ("watchdog", "uvicorn.access", "asyncio")


def _add_app_name(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("app", get_settings().app_name)
    return event_dict


def _renderer(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def configure_logging() -> None:
    """
    Configure structured logging from the LOG_* settings.

    Safe to call again after the settings changed, e.g. once the
    command line has been parsed.
    """
    settings = get_settings()
    level = getattr(logging, settings.logging.level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_app_name,
            *_renderer(settings.logging.format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, named after the component using it."""
    return structlog.get_logger(name)


class LoggerMixin:
    """Gives a class a ``log`` attribute bound to its class name."""

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__).bind(
                component=self.__class__.__name__
            )
        return self._logger
