"""Exceptions raised inside the sink.

None of these reach the ``emit`` path. They are caught where they occur and
turned into a diagnostic log entry plus a failed result; only ``AuthError``
(first token) and ``ConfigError`` (settings validation) surface at
construction time.
"""

from __future__ import annotations


class SinkError(Exception):
    """Base error for the Log Analytics sink."""
    pass


class ConfigError(SinkError):
    """Invalid credential or settings."""
    pass


class AuthError(SinkError):
    """Token exchange failed or returned no usable access token."""
    pass


class TransportError(SinkError):
    """The HTTP call itself failed (connection, timeout, protocol)."""
    pass


class SerializationError(SinkError):
    """A batch could not be encoded as JSON."""
    pass


class DeliveryError(SinkError):
    """The ingestion endpoint rejected a batch or could not be reached."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
