"""Log event and batch types."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class LogLevel(str, Enum):
    """Severity of a log event."""
    VERBOSE = "Verbose"
    DEBUG = "Debug"
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"

    @classmethod
    def from_logging(cls, levelno: int) -> LogLevel:
        """Map a :mod:`logging` level number onto the closest severity."""
        if levelno >= logging.CRITICAL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARNING
        if levelno >= logging.INFO:
            return cls.INFORMATION
        if levelno >= logging.DEBUG:
            return cls.DEBUG
        return cls.VERBOSE


class DeliveryState(str, Enum):
    """Lifecycle of a batch inside the dispatcher."""
    PENDING = "pending"
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"


# {{ and }} are literal braces; {Name}, {@Name}, {$Name}, {Name,10}, {Name:fmt}
_TEMPLATE_TOKEN = re.compile(
    r"\{\{|\}\}|\{([@$]?)([A-Za-z_][\w.]*)(?:,-?\d+)?(?::([^}]*))?\}"
)


def render_template(template: str, properties: Mapping[str, Any]) -> str:
    """
    Render a message template against its properties.

    Tokens with no matching property are left as written.
    """
    def substitute(match: re.Match) -> str:
        text = match.group(0)
        if text == "{{":
            return "{"
        if text == "}}":
            return "}"

        name, fmt = match.group(2), match.group(3)
        if name not in properties:
            return text

        value = properties[name]
        if fmt:
            try:
                return format(value, fmt)
            except (TypeError, ValueError):
                pass
        return str(value)

    return _TEMPLATE_TOKEN.sub(substitute, template)


@dataclass(frozen=True, slots=True)
class LogEvent:
    """
    A single structured log event.

    The sink never interprets these fields beyond wrapping the event for
    transport; ``to_dict`` is the shape that lands in the ``Event`` column.
    """
    timestamp: datetime
    level: LogLevel
    message_template: str
    properties: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    exception: str | None = None

    # Pre-rendered text, for producers whose templates are not {Name} style
    rendered_message: str | None = None

    @classmethod
    def create(
        cls,
        message_template: str,
        level: LogLevel = LogLevel.INFORMATION,
        properties: Mapping[str, Any] | None = None,
        exception: str | None = None,
        timestamp: datetime | None = None,
        rendered_message: str | None = None,
    ) -> LogEvent:
        """Factory method with sensible defaults."""
        return cls(
            timestamp=timestamp or datetime.now(timezone.utc),
            level=level,
            message_template=message_template,
            properties=MappingProxyType(dict(properties or {})),
            exception=exception,
            rendered_message=rendered_message,
        )

    def render(self) -> str:
        """Message text with properties substituted."""
        if self.rendered_message is not None:
            return self.rendered_message
        return render_template(self.message_template, self.properties)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "Timestamp": self.timestamp.isoformat(),
            "Level": self.level.value,
            "MessageTemplate": self.message_template,
            "RenderedMessage": self.render(),
            "Properties": dict(self.properties),
        }
        if self.exception:
            data["Exception"] = self.exception
        return data


@dataclass(frozen=True, slots=True)
class Batch:
    """An ordered group of events released together for one delivery attempt."""
    events: tuple[LogEvent, ...]
    sequence: int

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Terminal result of one delivery attempt."""
    batch: Batch
    state: DeliveryState
    status_code: int | None = None
    error: Exception | None = None

    @property
    def delivered(self) -> bool:
        return self.state == DeliveryState.DELIVERED
