"""Tests for Record parsing and QueryFilter validation."""

from __future__ import annotations

import pytest

from models import MalformedRecordError, QueryFilter, Record


def _event(**overrides) -> dict:
    event = {
        "id": "e1",
        "pubkey": "author-a",
        "created_at": 1700000000,
        "kind": 10002,
        "tags": [["r", "wss://relay.example/"], ["r", "wss://other.example", "read"]],
        "content": "",
        "sig": "",
    }
    event.update(overrides)
    return event


def test_from_event_smoke() -> None:
    record = Record.from_event(_event())

    assert record.author == "author-a"
    assert record.created_at == 1700000000
    assert record.tags == (("r", "wss://relay.example/"), ("r", "wss://other.example", "read"))


def test_from_event_missing_tags_means_no_tags() -> None:
    event = _event()
    del event["tags"]
    assert Record.from_event(event).tags == ()


@pytest.mark.parametrize("event", [
    "not an object",
    _event(pubkey=""),
    _event(pubkey=None),
    _event(created_at="1700000000"),
    _event(created_at=True),
    _event(tags="r wss://relay.example"),
    _event(tags=[["r", "wss://relay.example"], "r"]),
    _event(tags=[["r", 42]]),
])
def test_from_event_rejects_malformed_events(event) -> None:
    with pytest.raises(MalformedRecordError):
        Record.from_event(event)


def test_query_filter_defaults_to_relay_lists() -> None:
    assert QueryFilter().to_nostr() == {"kinds": [10002], "limit": 1000}


def test_query_filter_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        QueryFilter(limit=0)
