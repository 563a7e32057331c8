"""Structured logging configuration — structlog + stdlib logging."""

from __future__ import annotations

import logging.config
import os

import structlog

# third-party loggers that are too chatty at the business level
_LIBRARY_LEVELS = {
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "httpx": "WARNING",
    "redis": "WARNING",
}


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Route structlog and stdlib records through one stdout handler.

    Arguments win over the environment:
        REPOWATCH_LOG_LEVEL  — level of the ``repowatch`` tree (default: INFO)
        REPOWATCH_LOG_FORMAT — console | json (default: console)

    Safe to call more than once; the last call wins.
    """
    log_level = (level or os.environ.get("REPOWATCH_LOG_LEVEL") or "INFO").upper()
    log_format = (fmt or os.environ.get("REPOWATCH_LOG_FORMAT") or "console").lower()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers = {name: {"level": lvl} for name, lvl in _LIBRARY_LEVELS.items()}
    loggers["repowatch"] = {"level": log_level}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stdout"], "level": "WARNING"},
            "loggers": loggers,
        }
    )
