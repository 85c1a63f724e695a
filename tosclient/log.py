"""Logging helpers for the TOS client.

Library loggers are structlog loggers bound to stdlib loggers under the
"tosclient" namespace, so level filtering and handlers belong to the
application. Until the application configures logging nothing is emitted.
Applications (and the example CLI) call configure_logging() once.
"""

import logging
import sys

import structlog

ROOT_LOGGER = "tosclient"

_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
    structlog.dev.ConsoleRenderer(colors=False),
]

logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())


def configure_logging(level: str = "INFO") -> None:
    """Render client events on stderr.

    Args:
        level: Standard logging level name (DEBUG, INFO, WARNING, ...).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)
    logging.getLogger(ROOT_LOGGER).setLevel(numeric_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=_PROCESSORS,
        wrapper_class=structlog.stdlib.BoundLogger,
    )
