"""structlog setup for secscore runs.

Log events go to stderr (JSON for scheduled runs, colored console output
locally) so stdout stays reserved for the report a command prints.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

from secscore.core.config import LogFormat, get_settings

QUIET_LOGGERS = ("urllib3", "filelock")


def _renderer(fmt: LogFormat) -> structlog.types.Processor:
    if fmt == LogFormat.CONSOLE:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(
    level: str | None = None,
    fmt: LogFormat | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through a single stdlib handler.

    ``level`` and ``fmt`` fall back to LOG_LEVEL / LOG_FORMAT; ``stream``
    defaults to stderr.
    """
    settings = get_settings()
    log_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(fmt or settings.log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run_context(**values: str) -> None:
    """Attach context (command, history path) to every event of this run."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def get_logger(name: str, **initial_context: str) -> structlog.stdlib.BoundLogger:
    """Logger named after its module area, e.g. "history.store"."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
