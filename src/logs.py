"""Structured logging configuration: structlog on top of stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

LOGGER_NAMESPACE = "ab_lint"

_VERBOSITY_LEVELS = ("WARNING", "INFO", "DEBUG")


def level_for(verbosity: int) -> str:
    """Map a ``-v`` count to a log level name.

    Examples:
        >>> level_for(0)
        'WARNING'
        >>> level_for(5)
        'DEBUG'
    """
    return _VERBOSITY_LEVELS[min(max(verbosity, 0), len(_VERBOSITY_LEVELS) - 1)]


def setup_logging(verbosity: int = 0) -> None:
    """Configure structlog and stdlib logging; all output goes to stderr.

    Reads from environment variables:
        AB_LINT_LOG_LEVEL: overrides the level derived from ``verbosity``
        AB_LINT_LOG_FORMAT: console | json (default: console)
    """
    log_level = os.environ.get("AB_LINT_LOG_LEVEL", level_for(verbosity)).upper()
    log_format = os.environ.get("AB_LINT_LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Module-level loggers follow every reconfiguration.
        cache_logger_on_first_use=False,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": "WARNING",
            },
            "loggers": {
                LOGGER_NAMESPACE: {"level": log_level},
            },
        }
    )


__all__ = ["LOGGER_NAMESPACE", "level_for", "setup_logging"]
