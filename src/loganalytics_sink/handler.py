"""Bridge from the standard :mod:`logging` module to the sink."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .config import ConfigurationSettings, LoggerCredential
from .diagnostics import in_delivery, is_self_log
from .events import LogEvent, LogLevel
from .sink import LogAnalyticsSink


# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_default_formatter = logging.Formatter()


def event_from_record(record: logging.LogRecord, formatter: logging.Formatter | None = None) -> LogEvent:
    """
    Convert a :class:`logging.LogRecord` into a :class:`LogEvent`.

    ``extra`` fields and mapping-style ``args`` become properties, and the
    logger name is kept as ``SourceContext``. ``%``-style messages are
    rendered by :mod:`logging`; ``{Name}`` templates are rendered from the
    properties.
    """
    formatter = formatter or _default_formatter

    properties: dict[str, Any] = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }
    if isinstance(record.args, Mapping):
        properties.update(record.args)
    properties.setdefault("SourceContext", record.name)

    exception = None
    if record.exc_info:
        exception = formatter.formatException(record.exc_info)
    elif record.exc_text:
        exception = record.exc_text
    if record.stack_info:
        stack = formatter.formatStack(record.stack_info)
        exception = f"{exception}\n{stack}" if exception else stack

    return LogEvent.create(
        message_template=str(record.msg),
        level=LogLevel.from_logging(record.levelno),
        properties=properties,
        exception=exception,
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
        rendered_message=record.getMessage() if record.args else None,
    )


class LogAnalyticsHandler(logging.Handler):
    """
    :class:`logging.Handler` that forwards records to a :class:`LogAnalyticsSink`.

    Records from the sink's own loggers are skipped so its diagnostics
    never feed back into the stream it is shipping. The same goes for anything
    logged on a thread while the sink is sending, such as the HTTP client's
    request logs.
    """

    def __init__(
        self,
        sink: LogAnalyticsSink,
        level: int = logging.NOTSET,
        close_sink: bool = True,
    ):
        super().__init__(level)
        self.sink = sink
        self.close_sink = close_sink

    def emit(self, record: logging.LogRecord) -> None:
        if is_self_log(record.name) or in_delivery():
            return
        try:
            self.sink.emit(event_from_record(record, self.formatter))
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        if not self.sink.closed:
            self.sink.flush()

    def close(self) -> None:
        try:
            if self.close_sink:
                self.sink.close()
        finally:
            super().close()


def create_handler(
    credential: LoggerCredential,
    settings: ConfigurationSettings | None = None,
    level: int = logging.NOTSET,
    **sink_kwargs,
) -> LogAnalyticsHandler:
    """
    Build a sink and wrap it in a handler.

    Usage:
        logging.getLogger().addHandler(create_handler(credential))
    """
    sink = LogAnalyticsSink(credential, settings, **sink_kwargs)
    return LogAnalyticsHandler(sink, level=level)
