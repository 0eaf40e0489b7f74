"""Shared test fixtures for the Log Analytics sink tests."""

from __future__ import annotations

import pytest

from loganalytics_sink.config import ConfigurationSettings, LoggerCredential
from loganalytics_sink.events import LogEvent, LogLevel
from loganalytics_sink.sink import LogAnalyticsSink
from tests.mocks.transport import FakeTransport


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def credential() -> LoggerCredential:
    """Test credential pointing at a fake DCE."""
    return LoggerCredential(
        endpoint="https://dce-test.eastus-1.ingest.monitor.azure.com",
        immutable_id="dcr-0123456789abcdef",
        stream_name="Custom-AppLogs_CL",
        tenant_id="00000000-0000-0000-0000-000000000001",
        client_id="11111111-1111-1111-1111-111111111111",
        client_secret="not-a-real-secret",
    )


@pytest.fixture
def settings() -> ConfigurationSettings:
    """Small batches and a long flush interval so tests control flushing."""
    return ConfigurationSettings(
        batch_size=3,
        buffer_size=100,
        flush_interval_seconds=60.0,
        token_timeout_seconds=2.0,
        shutdown_timeout_seconds=2.0,
    )


# =============================================================================
# Transport / Sink Fixtures
# =============================================================================

@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sink(credential, settings, transport):
    """Sink without a background loop; tests flush explicitly."""
    sink = LogAnalyticsSink(credential, settings, transport=transport, autostart=False)
    yield sink
    sink.close()


def make_event(i: int, level: LogLevel = LogLevel.INFORMATION) -> LogEvent:
    return LogEvent.create("Event {Index}", level=level, properties={"Index": i})


@pytest.fixture
def events():
    """Factory for numbered events."""
    def factory(count: int) -> list[LogEvent]:
        return [make_event(i) for i in range(count)]
    return factory

