"""Polling helper for tests that involve the background flush loop."""

from __future__ import annotations

import time


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until ``predicate`` is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
