"""Flush loop that delivers released batches to the ingestion endpoint."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .buffer import BatchBuffer
from .diagnostics import delivering
from .encoder import JsonEncoder
from .errors import AuthError, DeliveryError, SinkError, TransportError
from .events import Batch, DeliveryOutcome, DeliveryState
from .token_cache import TokenCache
from .transport import Transport


logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Delivers batches one at a time.

    Each batch goes ``pending -> sending -> delivered | failed`` exactly once.
    A failed batch is never re-queued: the token is invalidated, a refresh
    is scheduled, and the next scheduled flush carries on with new batches.

    One lock covers taking a batch off the buffer and sending it, so at most
    one delivery is in flight for the whole sink and batches reach the
    endpoint in release order, whichever thread triggered the flush.
    """

    def __init__(
        self,
        buffer: BatchBuffer,
        encoder: JsonEncoder,
        tokens: TokenCache,
        transport: Transport,
        url: str,
        on_failure: Callable[[DeliveryOutcome], None] | None = None,
    ):
        self._buffer = buffer
        self._encoder = encoder
        self._tokens = tokens
        self._transport = transport
        self._url = url
        self._on_failure = on_failure

        self._send_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_outcome: DeliveryOutcome | None = None
        self._in_flight: Batch | None = None

        self._stats = {
            "batches_delivered": 0,
            "events_delivered": 0,
            "batches_failed": 0,
            "events_failed": 0,
        }

    def start(self) -> None:
        """Start the background flush loop."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="loganalytics-dispatcher", daemon=True
        )
        self._thread.start()
        logger.info("Log Analytics dispatcher started")

    def stop(self, timeout: float) -> bool:
        """
        Stop the loop after a final forced flush.

        Returns False if the final flush did not finish within ``timeout``;
        whatever is still buffered is then discarded.
        """
        self._stop.set()
        self._buffer.interrupt()

        if self._thread is None:
            self._buffer.flush(force=True)
            self.drain()
            return True

        self._thread.join(timeout)
        if self._thread.is_alive():
            lost = self._buffer.discard()
            logger.warning(
                f"Final flush did not complete within {timeout}s, discarded {lost} events"
            )
            return False

        logger.info(f"Log Analytics dispatcher stopped. Stats: {self.stats}")
        return True

    def drain(self) -> bool:
        """Deliver every released batch. Returns True if all were delivered."""
        ok = True
        while True:
            with self._send_lock:
                batch = self._buffer.pop()
                if batch is None:
                    return ok
                ok = self._deliver_unsafe(batch).delivered and ok

    def deliver(self, batch: Batch) -> DeliveryOutcome:
        """Make the single delivery attempt for ``batch``."""
        with self._send_lock:
            return self._deliver_unsafe(batch)

    def _deliver_unsafe(self, batch: Batch) -> DeliveryOutcome:
        """Send one batch (caller must hold the send lock)."""
        logger.debug(f"Sending batch #{batch.sequence} ({len(batch)} events)")
        self._in_flight = batch
        try:
            return self._attempt(batch)
        finally:
            self._in_flight = None

    def _attempt(self, batch: Batch) -> DeliveryOutcome:
        status_code = None
        try:
            body = self._encoder.encode(batch)

            token = self._tokens.current()
            if not token:
                raise AuthError("No access token available")

            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            try:
                with delivering():
                    response = self._transport.post(self._url, headers, body)
            except TransportError as e:
                raise DeliveryError(f"Ingestion endpoint unreachable: {e}") from e

            status_code = response.status_code
            if not response.is_success:
                raise DeliveryError(
                    f"Ingestion endpoint returned {response.status_code} "
                    f"{response.reason_phrase}".rstrip(),
                    status_code=response.status_code,
                )

        except SinkError as e:
            return self._fail(batch, e, status_code)
        except Exception as e:
            logger.exception(f"Unexpected error delivering batch #{batch.sequence}")
            return self._fail(batch, e, status_code)

        outcome = DeliveryOutcome(batch, DeliveryState.DELIVERED, status_code=status_code)
        self._stats["batches_delivered"] += 1
        self._stats["events_delivered"] += len(batch)
        self._last_outcome = outcome
        return outcome

    def _fail(self, batch: Batch, error: Exception, status_code: int | None) -> DeliveryOutcome:
        logger.error(
            f"Failed to deliver batch #{batch.sequence} ({len(batch)} events): {error}"
        )

        # Expiry is the usual cause; the next flush goes out with a new token
        self._tokens.invalidate()
        self._tokens.refresh_async()

        outcome = DeliveryOutcome(
            batch, DeliveryState.FAILED, status_code=status_code, error=error
        )
        self._stats["batches_failed"] += 1
        self._stats["events_failed"] += len(batch)
        self._last_outcome = outcome

        if self._on_failure is not None:
            try:
                self._on_failure(outcome)
            except Exception as e:
                logger.error(f"Delivery failure callback error: {e}")
        return outcome

    def _run(self) -> None:
        """
        Background loop.

        Waits for released batches (size threshold or aged live batch) and
        drains them. On stop, issues the final forced flush.
        """
        while not self._stop.is_set():
            try:
                if self._buffer.wait():
                    self.drain()
            except Exception as e:
                logger.error(f"Dispatcher loop error: {e}")

        self._buffer.flush(force=True)
        self.drain()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_outcome(self) -> DeliveryOutcome | None:
        return self._last_outcome

    @property
    def in_flight(self) -> Batch | None:
        """The batch currently being sent, if any."""
        return self._in_flight

    @property
    def state(self) -> DeliveryState | None:
        """
        State at the head of the pipeline.

        ``sending`` while a delivery is in flight, ``pending`` while released
        batches wait, otherwise the state the last batch ended in (None
        before the first attempt).
        """
        if self._in_flight is not None:
            return DeliveryState.SENDING
        if self._buffer.ready_count:
            return DeliveryState.PENDING
        outcome = self._last_outcome
        return outcome.state if outcome is not None else None

    @property
    def stats(self) -> dict:
        """Get dispatcher statistics."""
        in_flight = self._in_flight
        state = self.state
        return {
            **self._stats,
            "state": state.value if state is not None else None,
            "sending": in_flight.sequence if in_flight is not None else None,
            "running": self.is_running,
        }
