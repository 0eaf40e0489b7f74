"""Public sink entry point."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .buffer import BatchBuffer
from .config import ConfigurationSettings, LoggerCredential, SinkConfig
from .dispatcher import Dispatcher
from .encoder import JsonEncoder
from .errors import AuthError
from .events import DeliveryOutcome, LogEvent
from .token_cache import TokenCache
from .transport import HttpxTransport, Transport


logger = logging.getLogger(__name__)


class LogAnalyticsSink:
    """
    Ships log events to an Azure Monitor Logs ingestion stream.

    Construction wires the buffer, encoder, token cache and dispatcher,
    blocks until the first access token is available (bounded by
    ``token_timeout_seconds``), then starts the background flush loop.
    A credential that cannot produce a token fails construction with
    :class:`AuthError`; the sink never runs with an empty token.

    Usage:
        with LogAnalyticsSink(credential, ConfigurationSettings(batch_size=50)) as sink:
            sink.emit(LogEvent.create("Order {OrderId} placed", properties={"OrderId": 7}))

    ``emit`` never raises and never waits on the network. Delivery problems
    are reported only through the ``loganalytics_sink`` loggers.
    """

    def __init__(
        self,
        credential: LoggerCredential,
        settings: ConfigurationSettings | None = None,
        *,
        transport: Transport | None = None,
        on_failure: Callable[[DeliveryOutcome], None] | None = None,
        autostart: bool = True,
    ):
        self.credential = credential
        self.settings = settings or ConfigurationSettings()

        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport(timeout=self.settings.request_timeout_seconds)

        self._buffer = BatchBuffer(
            batch_size=self.settings.batch_size,
            capacity=self.settings.buffer_size,
            flush_interval=self.settings.flush_interval_seconds,
        )
        self._encoder = JsonEncoder(
            naming_strategy=self.settings.naming_strategy,
            max_depth=self.settings.max_depth,
            application_serializer=self.settings.application_serializer,
        )
        self._tokens = TokenCache(credential, self._transport)
        self._dispatcher = Dispatcher(
            buffer=self._buffer,
            encoder=self._encoder,
            tokens=self._tokens,
            transport=self._transport,
            url=credential.ingestion_url,
            on_failure=on_failure,
        )

        self._closed = False
        self._close_lock = threading.Lock()

        try:
            self._tokens.prime(self.settings.token_timeout_seconds)
        except AuthError:
            self._release()
            raise

        if autostart:
            self.start()

    @classmethod
    def from_config(cls, config: SinkConfig, **kwargs) -> LogAnalyticsSink:
        """Create a sink from a loaded :class:`SinkConfig`."""
        return cls(config.credential, config.settings, **kwargs)

    def start(self) -> None:
        """Start the background flush loop (done by the constructor by default)."""
        self._dispatcher.start()

    def emit(self, event: LogEvent) -> None:
        """Queue an event for delivery (fire and forget)."""
        if self._closed:
            logger.debug("Sink closed, dropping event")
            return

        try:
            self._buffer.push(event)
        except Exception as e:
            logger.error(f"Failed to buffer log event: {e}")

    def flush(self) -> bool:
        """
        Release the partial batch and deliver everything buffered, in the
        calling thread.

        Returns True if every batch was delivered.
        """
        if self._closed:
            return False
        self._buffer.flush(force=True)
        return self._dispatcher.drain()

    def close(self, timeout: float | None = None) -> bool:
        """
        Final forced flush, awaited for at most ``timeout`` seconds
        (``shutdown_timeout_seconds`` by default). Events still buffered
        after that are discarded.
        """
        with self._close_lock:
            if self._closed:
                return True
            self._closed = True

        if timeout is None:
            timeout = self.settings.shutdown_timeout_seconds

        try:
            return self._dispatcher.stop(timeout)
        finally:
            self._release()

    def _release(self) -> None:
        self._tokens.close()
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> LogAnalyticsSink:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffer(self) -> BatchBuffer:
        return self._buffer

    @property
    def tokens(self) -> TokenCache:
        return self._tokens

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def stats(self) -> dict:
        """Get sink statistics."""
        return {
            "closed": self._closed,
            "buffer": self._buffer.stats,
            "dispatcher": self._dispatcher.stats,
            "tokens": self._tokens.stats,
        }

    def __repr__(self) -> str:
        return (
            f"LogAnalyticsSink(batch_size={self.settings.batch_size}, closed={self._closed})"
        )
