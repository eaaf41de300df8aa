"""Logging configuration using loguru.

Stdlib records (uvicorn, httpx, sqlalchemy and the controller's own
``logging`` calls) are bridged into loguru, so every line shares one format.
Work done on behalf of a pull request runs inside :func:`pr_context`, which
stamps each record with the ``owner/repo#number`` key.
"""

from __future__ import annotations

import inspect
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger

NO_PR = "-"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[pr]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Every provider poll is an httpx request; keep them out of INFO.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


class InterceptHandler(logging.Handler):
    """Forward stdlib records to loguru, keeping the original call-site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


@contextmanager
def pr_context(key: str) -> Iterator[None]:
    """Tag every record emitted inside the block with the PR key."""
    with logger.contextualize(pr=key):
        yield


def setup_logging(level: str = "INFO") -> None:
    """Make loguru the only sink.  Call once, before uvicorn starts."""
    level = level.upper()

    logger.remove()
    logger.configure(extra={"pr": NO_PR})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
