"""
Logging configuration

Every record carries the request, owner and unit it was logged under, so
the lines of one run (or one unit) can be grepped out of an interleaved
log. The values live in context variables: concurrent requests and
scheduler jobs each see their own.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional

from core.config import settings


LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "req=%(request_id)s owner=%(owner_id)s unit=%(unit_id)s | %(message)s"
)

_CONTEXT: Dict[str, ContextVar] = {
    "request_id": ContextVar("request_id", default=None),
    "owner_id": ContextVar("owner_id", default=None),
    "unit_id": ContextVar("unit_id", default=None),
}


class ContextFilter(logging.Filter):
    """Add the current request/owner/unit to log records ("-" when unset)"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, var in _CONTEXT.items():
            if not hasattr(record, key):
                value = var.get()
                setattr(record, key, value if value is not None else "-")
        return True


@contextmanager
def log_context(**values: Optional[str]) -> Iterator[None]:
    """
    Bind request_id, owner_id and/or unit_id for the enclosed block.

    Usage:
        with log_context(owner_id="clinic_1"):
            logger.info("Starting run")
    """
    unknown = set(values) - set(_CONTEXT)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")

    tokens = [(_CONTEXT[key], _CONTEXT[key].set(value)) for key, value in values.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def current_context() -> Dict[str, Optional[str]]:
    return {key: var.get() for key, var in _CONTEXT.items()}


def setup_logging():
    """Configure application logging"""

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler]
    )

    # Quieten chatty third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")
