"""Self-log channel for the sink's own diagnostics.

Every module logs through ``logging.getLogger(__name__)``, so the whole
``loganalytics_sink`` logger namespace is the diagnostic channel. It is
silent unless the application configures logging or calls
:func:`enable_self_log`.

HTTP calls made on behalf of the sink run inside :func:`delivering`. Any
record logged on that thread meanwhile (httpx and httpcore log each
request) is the sink's own traffic and must not be shipped.
"""

from __future__ import annotations

import logging
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, TextIO


SELF_LOG_NAMESPACE = "loganalytics_sink"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_delivery = threading.local()


def is_self_log(logger_name: str) -> bool:
    """Whether a logger belongs to the sink itself."""
    return logger_name == SELF_LOG_NAMESPACE or logger_name.startswith(SELF_LOG_NAMESPACE + ".")


@contextmanager
def delivering() -> Iterator[None]:
    """Mark the current thread as talking to the token or ingestion endpoint."""
    previous = getattr(_delivery, "active", False)
    _delivery.active = True
    try:
        yield
    finally:
        _delivery.active = previous


def in_delivery() -> bool:
    """Whether the current thread is inside :func:`delivering`."""
    return getattr(_delivery, "active", False)


def enable_self_log(stream: TextIO | None = None, level: int = logging.WARNING) -> logging.Handler:
    """
    Write sink diagnostics to ``stream`` (stderr by default).

    Returns the handler so callers can remove it again.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.setLevel(level)

    logger = logging.getLogger(SELF_LOG_NAMESPACE)
    logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    return handler


def disable_self_log(handler: logging.Handler) -> None:
    """Detach a handler returned by :func:`enable_self_log`."""
    logging.getLogger(SELF_LOG_NAMESPACE).removeHandler(handler)


logging.getLogger(SELF_LOG_NAMESPACE).addHandler(logging.NullHandler())
