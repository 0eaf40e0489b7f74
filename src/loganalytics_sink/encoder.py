"""JSON encoding of batches into the ingestion payload."""

from __future__ import annotations

import dataclasses
import json
import math
import re
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from .config import NamingStrategy
from .errors import SerializationError
from .events import Batch


_SKIP = object()
_LEADING_UPPER = re.compile(r"^[A-Z]+(?=[A-Z][a-z]|$|\d)|^[A-Z]")


def to_camel_case(name: str) -> str:
    """
    camelCase a property name.

    ``Timestamp`` -> ``timestamp``, ``URLPath`` -> ``urlPath``,
    ``user_id`` -> ``userId``.
    """
    if "_" in name.strip("_"):
        head, *rest = [part for part in name.split("_") if part]
        name = head + "".join(part[:1].upper() + part[1:] for part in rest)
    return _LEADING_UPPER.sub(lambda m: m.group(0).lower(), name, count=1)


@dataclasses.dataclass
class JsonEncoder:
    """
    Encodes batches as the JSON array the ingestion endpoint expects.

    Each event is wrapped in an envelope::

        {"TimeGenerated": "<UTC ISO-8601>", "Event": {...}}

    Arbitrary property values are tolerated:
    - Reference cycles are broken by omitting the repeated reference
    - Containers nested deeper than ``max_depth`` are omitted (0 = unlimited)
    - NaN and infinities are written as the strings ``"NaN"``,
      ``"Infinity"`` and ``"-Infinity"``
    - Dataclasses, enums, datetimes, UUIDs and objects with ``to_dict`` are
      converted; anything else falls back to ``str()``
    """
    naming_strategy: NamingStrategy = NamingStrategy.DEFAULT
    max_depth: int = 0
    application_serializer: Callable[[Any], bytes | str] | None = None

    def envelopes(self, batch: Batch, now: datetime | None = None) -> list[dict[str, Any]]:
        """Wrap every event of the batch with the server-side ingestion time."""
        generated = (now or datetime.now(timezone.utc)).isoformat()
        return [
            {"TimeGenerated": generated, "Event": event.to_dict()}
            for event in batch
        ]

    def encode(self, batch: Batch, now: datetime | None = None) -> bytes:
        """Encode a batch, raising :class:`SerializationError` on failure."""
        return self.serialize(self.envelopes(batch, now))

    def serialize(self, envelopes: list[dict[str, Any]]) -> bytes:
        """Serialize envelopes according to the configured naming strategy."""
        try:
            if self.naming_strategy == NamingStrategy.APPLICATION and self.application_serializer:
                payload = self.application_serializer(envelopes)
                return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

            rename = to_camel_case if self.naming_strategy == NamingStrategy.CAMEL_CASE else None
            prepared = [
                {
                    "TimeGenerated": envelope["TimeGenerated"],
                    "Event": self._prepare(envelope["Event"], 1, set(), rename),
                }
                for envelope in envelopes
            ]
            return json.dumps(
                prepared,
                ensure_ascii=False,
                allow_nan=False,
                separators=(",", ":"),
            ).encode("utf-8")
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to serialize batch: {e}") from e

    def _prepare(
        self,
        value: Any,
        depth: int,
        seen: set[int],
        rename: Callable[[str], str] | None,
    ) -> Any:
        """Convert a value to JSON-native types, breaking cycles and bounding depth."""
        if isinstance(value, float) and not math.isfinite(value):
            return _non_finite(value)
        if value is None or isinstance(value, (str, bool, int, float)):
            return value
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()
        if isinstance(value, (UUID, Decimal)):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return value.hex()

        # Track the source object: to_dict() and dataclass conversion
        # build a fresh mapping on every visit
        object_id = id(value)
        if object_id in seen:
            return _SKIP

        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        elif hasattr(value, "to_dict") and callable(value.to_dict):
            value = value.to_dict()

        if isinstance(value, Mapping):
            if self.max_depth and depth > self.max_depth:
                return _SKIP
            seen.add(object_id)
            try:
                result = {}
                for key, item in value.items():
                    prepared = self._prepare(item, depth + 1, seen, rename)
                    if prepared is _SKIP:
                        continue
                    key = str(key)
                    result[rename(key) if rename else key] = prepared
                return result
            finally:
                seen.discard(object_id)

        if isinstance(value, (list, tuple, set, frozenset)):
            if self.max_depth and depth > self.max_depth:
                return _SKIP
            seen.add(object_id)
            try:
                items = (self._prepare(item, depth + 1, seen, rename) for item in value)
                return [item for item in items if item is not _SKIP]
            finally:
                seen.discard(object_id)

        return str(value)


def _non_finite(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"
