"""Bounded batch buffer between producers and the flush loop."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable

from .events import Batch, LogEvent


logger = logging.getLogger(__name__)


class BatchBuffer:
    """
    Thread-safe buffer that turns single events into batches.

    Producers ``push`` events into a live batch. When the live batch reaches
    ``batch_size`` it is swapped out, in the same locked step, onto a FIFO of
    released batches that the flush loop consumes with ``wait`` / ``pop``.
    A partially filled live batch is released once it has waited one flush
    interval, or immediately on ``flush(force=True)``.

    Overflow policy: at most ``capacity`` records are held. When a push would
    exceed that, the oldest released batch is dropped and logged. Producers
    never block on delivery.
    """

    def __init__(
        self,
        batch_size: int,
        capacity: int,
        flush_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if capacity < batch_size:
            raise ValueError("capacity must be >= batch_size")

        self._batch_size = batch_size
        self._capacity = capacity
        self._flush_interval = flush_interval
        self._clock = clock

        self._cond = threading.Condition()
        self._live: list[LogEvent] = []
        self._live_since = 0.0
        self._ready: deque[Batch] = deque()
        self._ready_records = 0
        self._sequence = 0
        self._interrupted = False

        self._stats = {
            "pushed": 0,
            "batches_released": 0,
            "batches_dropped": 0,
            "records_dropped": 0,
            "records_discarded": 0,
        }

    def push(self, event: LogEvent) -> None:
        """Append an event to the live batch, releasing it when full."""
        dropped = None

        with self._cond:
            if self._ready and self._ready_records + len(self._live) >= self._capacity:
                dropped = self._ready.popleft()
                self._ready_records -= len(dropped)
                self._stats["batches_dropped"] += 1
                self._stats["records_dropped"] += len(dropped)

            if not self._live:
                self._live_since = self._clock()
                # Waiters recompute their flush deadline
                self._cond.notify_all()

            self._live.append(event)
            self._stats["pushed"] += 1

            if len(self._live) >= self._batch_size:
                self._release_unsafe()

        if dropped is not None:
            logger.warning(
                f"Buffer full ({self._capacity} records), dropped batch "
                f"#{dropped.sequence} with {len(dropped)} events"
            )

    def flush(self, force: bool = False) -> bool:
        """
        Release the partial live batch.

        Without ``force`` the batch is only released once its oldest event
        has waited a full flush interval. Returns True if a batch was released.
        """
        with self._cond:
            if not self._live:
                return False
            if not force and self._clock() - self._live_since < self._flush_interval:
                return False
            self._release_unsafe()
            return True

    def pop(self) -> Batch | None:
        """Take the oldest released batch, if any."""
        with self._cond:
            if not self._ready:
                return None
            batch = self._ready.popleft()
            self._ready_records -= len(batch)
            return batch

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until a released batch is available.

        An aged live batch is released when its flush interval runs out.
        Returns False on timeout or after ``interrupt``.
        """
        deadline = None if timeout is None else self._clock() + timeout

        with self._cond:
            while True:
                if self._ready:
                    return True
                if self._interrupted:
                    return False

                now = self._clock()
                waits = []

                if self._live:
                    due_in = self._live_since + self._flush_interval - now
                    if due_in <= 0:
                        self._release_unsafe()
                        return True
                    waits.append(due_in)

                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return False
                    waits.append(remaining)

                self._cond.wait(min(waits) if waits else None)

    def interrupt(self) -> None:
        """Wake every waiter; subsequent waits return immediately."""
        with self._cond:
            self._interrupted = True
            self._cond.notify_all()

    def discard(self) -> int:
        """Drop everything still buffered. Returns the number of records lost."""
        with self._cond:
            count = self._ready_records + len(self._live)
            self._ready.clear()
            self._ready_records = 0
            self._live = []
            self._stats["records_discarded"] += count
            return count

    @property
    def live_count(self) -> int:
        """Events in the in-progress batch."""
        with self._cond:
            return len(self._live)

    @property
    def ready_count(self) -> int:
        """Released batches waiting for delivery."""
        with self._cond:
            return len(self._ready)

    @property
    def pending_records(self) -> int:
        """All records not yet handed to the dispatcher."""
        with self._cond:
            return self._ready_records + len(self._live)

    @property
    def stats(self) -> dict:
        """Get buffer statistics."""
        with self._cond:
            return {
                **self._stats,
                "live": len(self._live),
                "ready_batches": len(self._ready),
                "pending_records": self._ready_records + len(self._live),
            }

    def _release_unsafe(self) -> None:
        """Swap the live batch onto the ready queue (caller must hold lock)."""
        batch = Batch(events=tuple(self._live), sequence=self._sequence)
        self._sequence += 1
        self._live = []
        self._ready.append(batch)
        self._ready_records += len(batch)
        self._stats["batches_released"] += 1
        self._cond.notify_all()
