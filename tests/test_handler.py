"""Tests for the logging.Handler bridge."""

import json
import logging
import sys

import pytest

from loganalytics_sink.diagnostics import delivering
from loganalytics_sink.events import LogLevel
from loganalytics_sink.handler import LogAnalyticsHandler, create_handler, event_from_record
from loganalytics_sink.sink import LogAnalyticsSink
from tests.mocks.endpoints import MockEndpoints


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    level = root.level
    root.setLevel(logging.INFO)
    yield root
    root.setLevel(level)


@pytest.fixture
def app_logger():
    logger = logging.getLogger("tests.app")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def make_record(msg, args=(), level=logging.INFO, name="tests.app", **extra):
    record = logging.LogRecord(name, level, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestEventFromRecord:
    def test_percent_style(self):
        event = event_from_record(make_record("%d items", (5,)))

        assert event.message_template == "%d items"
        assert event.render() == "5 items"
        assert event.properties["SourceContext"] == "tests.app"

    def test_template_style_with_extra(self):
        event = event_from_record(make_record("User {UserId} logged in", UserId=42))

        assert event.properties["UserId"] == 42
        assert event.render() == "User 42 logged in"

    def test_mapping_args(self):
        event = event_from_record(make_record("%(count)s done", ({"count": 3},)))
        assert event.properties["count"] == 3
        assert event.render() == "3 done"

    def test_level_and_timestamp(self):
        record = make_record("x", level=logging.ERROR)
        event = event_from_record(record)

        assert event.level == LogLevel.ERROR
        assert event.timestamp.timestamp() == pytest.approx(record.created)

    def test_exception_text(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = logging.LogRecord("tests.app", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        event = event_from_record(record)
        assert "ValueError: bad value" in event.exception

    def test_reserved_attributes_not_properties(self):
        event = event_from_record(make_record("x"))
        assert set(event.properties) == {"SourceContext"}


class TestLogAnalyticsHandler:
    def test_records_reach_sink(self, sink, transport, app_logger):
        app_logger.addHandler(LogAnalyticsHandler(sink, close_sink=False))

        app_logger.info("Order %s placed", "o-1")
        app_logger.warning("Stock low")
        sink.flush()

        events = [e["Event"] for e in transport.delivered_payloads()[0]]
        assert [e["RenderedMessage"] for e in events] == ["Order o-1 placed", "Stock low"]
        assert [e["Level"] for e in events] == ["Information", "Warning"]

    def test_level_filter(self, sink, app_logger):
        app_logger.addHandler(LogAnalyticsHandler(sink, level=logging.WARNING, close_sink=False))

        app_logger.info("ignored")
        assert sink.buffer.pending_records == 0

    def test_self_log_records_skipped(self, sink):
        handler = LogAnalyticsHandler(sink, close_sink=False)
        handler.handle(make_record("Failed to deliver", name="loganalytics_sink.dispatcher"))
        assert sink.buffer.pending_records == 0

    def test_records_logged_during_delivery_skipped(self, sink):
        handler = LogAnalyticsHandler(sink, close_sink=False)

        with delivering():
            handler.handle(make_record("HTTP Request: POST ...", name="httpx"))
        assert sink.buffer.pending_records == 0

        # The application's own HTTP traffic is still shipped
        handler.handle(make_record("HTTP Request: GET ...", name="httpx"))
        assert sink.buffer.pending_records == 1

    def test_http_client_logs_do_not_feed_back(self, credential, settings, root_logger):
        endpoints = MockEndpoints()
        sink = LogAnalyticsSink(credential, settings, transport=endpoints.transport, autostart=False)
        handler = LogAnalyticsHandler(sink)
        root_logger.addHandler(handler)
        try:
            logging.getLogger("tests.http_app").info("hello")
            for _ in range(3):
                sink.flush()
            pending = sink.buffer.pending_records
        finally:
            root_logger.removeHandler(handler)
            handler.close()
            endpoints.close()

        assert pending == 0
        assert len(endpoints.ingested) == 1
        assert [e["Event"]["MessageTemplate"] for e in endpoints.ingested[0]] == ["hello"]
        payload = json.dumps(endpoints.ingested)
        for value in ("dce-test", credential.immutable_id, credential.stream_name, credential.tenant_id):
            assert value not in payload

    def test_close_closes_sink(self, sink):
        handler = LogAnalyticsHandler(sink)
        handler.close()
        assert sink.closed

    def test_flush_after_close(self, sink):
        handler = LogAnalyticsHandler(sink)
        handler.close()
        handler.flush()

    def test_create_handler(self, credential, settings, transport):
        handler = create_handler(
            credential, settings, level=logging.INFO, transport=transport, autostart=False
        )
        try:
            assert handler.level == logging.INFO
            assert handler.sink.tokens.has_token
        finally:
            handler.close()
