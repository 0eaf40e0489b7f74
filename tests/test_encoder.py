"""Tests for payload encoding."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import pytest

from loganalytics_sink.config import NamingStrategy
from loganalytics_sink.encoder import JsonEncoder, to_camel_case
from loganalytics_sink.errors import SerializationError
from loganalytics_sink.events import Batch, LogEvent


NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def batch_of(*events: LogEvent) -> Batch:
    return Batch(events=tuple(events), sequence=0)


def decode_event(encoder: JsonEncoder, event: LogEvent) -> dict:
    return json.loads(encoder.encode(batch_of(event), now=NOW))[0]["Event"]


class Color(Enum):
    RED = "red"


@dataclass
class Node:
    name: str
    children: list = field(default_factory=list)
    parent: "Node | None" = None


class TestCamelCase:
    @pytest.mark.parametrize("name,expected", [
        ("Timestamp", "timestamp"),
        ("MessageTemplate", "messageTemplate"),
        ("URLPath", "urlPath"),
        ("ID", "id"),
        ("user_id", "userId"),
        ("alreadyCamel", "alreadyCamel"),
        ("_private", "_private"),
    ])
    def test_to_camel_case(self, name, expected):
        assert to_camel_case(name) == expected


class TestJsonEncoder:
    def test_round_trip(self, events):
        batch = batch_of(*events(5))
        encoder = JsonEncoder()

        decoded = json.loads(encoder.encode(batch, now=NOW))

        assert len(decoded) == 5
        for envelope, event in zip(decoded, batch):
            assert envelope["TimeGenerated"] == "2024-01-02T03:04:05+00:00"
            assert envelope["Event"] == event.to_dict()

    def test_compact_utf8(self):
        encoder = JsonEncoder()
        body = encoder.encode(batch_of(LogEvent.create("héllo")), now=NOW)

        assert b" " not in body.split(b'"RenderedMessage"')[0]
        assert "héllo".encode("utf-8") in body

    def test_camel_case_keeps_envelope_keys(self):
        encoder = JsonEncoder(naming_strategy=NamingStrategy.CAMEL_CASE)
        event = LogEvent.create("x", properties={"RequestPath": "/a", "user_id": 1})

        envelope = json.loads(encoder.encode(batch_of(event), now=NOW))[0]

        assert set(envelope) == {"TimeGenerated", "Event"}
        assert envelope["Event"]["messageTemplate"] == "x"
        assert envelope["Event"]["properties"] == {"requestPath": "/a", "userId": 1}

    def test_application_serializer_used_unchanged(self):
        seen = []

        def serializer(envelopes):
            seen.append(envelopes)
            return "custom"

        encoder = JsonEncoder(
            naming_strategy=NamingStrategy.APPLICATION,
            application_serializer=serializer,
        )
        assert encoder.encode(batch_of(LogEvent.create("x")), now=NOW) == b"custom"
        assert seen[0][0]["Event"]["MessageTemplate"] == "x"

    def test_application_without_serializer_uses_default_names(self):
        encoder = JsonEncoder(naming_strategy=NamingStrategy.APPLICATION)
        event = decode_event(encoder, LogEvent.create("x"))
        assert "MessageTemplate" in event

    def test_self_reference_is_dropped(self):
        loop = {"name": "a"}
        loop["self"] = loop
        event = decode_event(JsonEncoder(), LogEvent.create("x", properties={"Loop": loop}))

        assert event["Properties"]["Loop"] == {"name": "a"}

    def test_dataclass_cycle_is_broken(self):
        root = Node("root")
        child = Node("child", parent=root)
        root.children.append(child)

        event = decode_event(JsonEncoder(), LogEvent.create("x", properties={"Tree": root}))

        tree = event["Properties"]["Tree"]
        assert tree["name"] == "root"
        assert tree["children"][0]["name"] == "child"
        assert "parent" not in tree["children"][0]

    def test_shared_reference_is_not_a_cycle(self):
        shared = {"v": 1}
        event = decode_event(
            JsonEncoder(), LogEvent.create("x", properties={"A": shared, "B": shared})
        )
        assert event["Properties"] == {"A": {"v": 1}, "B": {"v": 1}}

    def test_max_depth(self):
        nested = {"l1": {"l2": {"l3": {"l4": "deep"}}}}
        encoder = JsonEncoder(max_depth=4)

        event = decode_event(encoder, LogEvent.create("x", properties={"Nested": nested}))

        # Event=1, Properties=2, Nested=3, l1=4
        assert event["Properties"]["Nested"] == {"l1": {}}

    def test_special_values(self):
        event = decode_event(JsonEncoder(), LogEvent.create("x", properties={
            "When": NOW,
            "Color": Color.RED,
            "Raw": b"\x01\x02",
            "Tags": {"a"},
            "Other": object,
        }))

        props = event["Properties"]
        assert props["When"] == "2024-01-02T03:04:05+00:00"
        assert props["Color"] == "red"
        assert props["Raw"] == "0102"
        assert props["Tags"] == ["a"]
        assert props["Other"] == "<class 'object'>"

    def test_non_finite_floats_become_strings(self):
        event = decode_event(JsonEncoder(), LogEvent.create("x", properties={
            "Ratio": float("nan"),
            "Max": float("inf"),
            "Min": float("-inf"),
            "Series": [1.5, float("nan")],
        }))

        props = event["Properties"]
        assert props["Ratio"] == "NaN"
        assert props["Max"] == "Infinity"
        assert props["Min"] == "-Infinity"
        assert props["Series"] == [1.5, "NaN"]

    def test_serializer_failure_wrapped(self):
        def broken(envelopes):
            raise RuntimeError("nope")

        encoder = JsonEncoder(naming_strategy=NamingStrategy.APPLICATION, application_serializer=broken)
        with pytest.raises(SerializationError, match="nope"):
            encoder.encode(batch_of(LogEvent.create("x")))
