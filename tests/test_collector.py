"""Tests for collector.collect and the DedupedView merge rules."""

from __future__ import annotations

import itertools
import threading
import time
from unittest.mock import patch

import pytest

from collector import DedupedView, _fetch_into, collect
from models import QueryFilter, Record
from relay_client import RelayConnectionError, RelayQueryError, RelayTimeoutError


def _record(author: str, created_at: int, *relays: str) -> Record:
    return Record(author=author, created_at=created_at, tags=tuple(("r", url) for url in relays))


def _fake_fetch(responses: dict):
    """fetch_events stand-in: returns or raises per source."""
    def fetch(source, query_filter, deadline):
        result = responses[source]
        if isinstance(result, Exception):
            raise result
        return result
    return fetch


# ---------------------------------------------------------------------------
# DedupedView
# ---------------------------------------------------------------------------


def test_view_keeps_newest_record_per_author() -> None:
    view = DedupedView()
    view.merge([_record("a", 100), _record("b", 50)])
    view.merge([_record("a", 200), _record("b", 10)])

    snapshot = view.snapshot()
    assert snapshot["a"].created_at == 200
    assert snapshot["b"].created_at == 50


def test_view_tie_keeps_first_merged_record() -> None:
    first = _record("a", 100, "wss://first.example")
    second = _record("a", 100, "wss://second.example")
    view = DedupedView()
    view.merge([first])
    view.merge([second])

    assert view.snapshot()["a"] is first


def test_view_result_independent_of_merge_order() -> None:
    batches = [
        [_record("a", 100), _record("b", 300)],
        [_record("a", 200)],
        [_record("b", 100), _record("c", 1)],
    ]
    results = []
    for order in itertools.permutations(batches):
        view = DedupedView()
        for batch in order:
            view.merge(batch)
        results.append({author: r.created_at for author, r in view.snapshot().items()})

    assert all(result == {"a": 200, "b": 300, "c": 1} for result in results)


def test_view_ignores_merges_after_seal() -> None:
    view = DedupedView()
    view.merge([_record("a", 100)])
    view.seal()

    assert view.merge([_record("a", 200), _record("b", 1)]) is False
    assert view.snapshot() == {"a": _record("a", 100)}


def test_view_concurrent_merges_keep_maximum() -> None:
    view = DedupedView()

    def writer(offset: int) -> None:
        for ts in range(offset, 1000, 4):
            view.merge([_record("a", ts)])

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert view.snapshot()["a"].created_at == 999


# ---------------------------------------------------------------------------
# collect
# ---------------------------------------------------------------------------


def test_collect_merges_all_sources_newest_wins() -> None:
    responses = {
        "wss://one": [_record("a", 100, "wss://relay.example/"), _record("b", 5)],
        "wss://two": [_record("a", 200, "wss://relay.example/")],
    }

    with patch("collector.fetch_events", side_effect=_fake_fetch(responses)):
        view = collect(list(responses), QueryFilter(), timeout=5)

    assert set(view) == {"a", "b"}
    assert view["a"].created_at == 200


def test_collect_skips_failing_sources() -> None:
    responses = {
        "wss://ok": [_record("a", 1)],
        "wss://refused": RelayConnectionError("wss://refused", "connect failed"),
        "wss://closed": RelayQueryError("wss://closed", "subscription closed by relay"),
        "wss://slow": RelayTimeoutError("wss://slow", "deadline passed"),
    }

    with patch("collector.fetch_events", side_effect=_fake_fetch(responses)):
        view = collect(list(responses), QueryFilter(), timeout=5)

    assert list(view) == ["a"]


def test_collect_all_sources_failing_is_empty_not_error() -> None:
    responses = {
        "wss://one": RelayConnectionError("wss://one", "connect failed"),
        "wss://two": RelayConnectionError("wss://two", "connect failed"),
    }

    with patch("collector.fetch_events", side_effect=_fake_fetch(responses)):
        assert collect(list(responses), QueryFilter(), timeout=5) == {}


def test_collect_survives_unexpected_fetch_crash() -> None:
    responses = {"wss://ok": [_record("a", 1)], "wss://buggy": RuntimeError("boom")}

    with patch("collector.fetch_events", side_effect=_fake_fetch(responses)):
        view = collect(list(responses), QueryFilter(), timeout=5)

    assert list(view) == ["a"]


def test_collect_returns_at_deadline_despite_hanging_source() -> None:
    release = threading.Event()

    def fetch(source, query_filter, deadline):
        if source == "wss://hang":
            release.wait(10)
            return [_record("late", 1)]
        return [_record("a", 1)]

    start = time.monotonic()
    try:
        with patch("collector.fetch_events", side_effect=fetch):
            view = collect(["wss://ok", "wss://hang"], QueryFilter(), timeout=0.3)
        elapsed = time.monotonic() - start
    finally:
        release.set()

    assert elapsed < 2.0
    assert list(view) == ["a"]


def test_collect_passes_one_shared_deadline() -> None:
    deadlines = []

    def fetch(source, query_filter, deadline):
        deadlines.append(deadline)
        return []

    before = time.monotonic()
    with patch("collector.fetch_events", side_effect=fetch):
        collect(["wss://one", "wss://two", "wss://three"], QueryFilter(), timeout=7)

    assert len(set(deadlines)) == 1
    assert before + 7 <= deadlines[0] <= time.monotonic() + 7


def test_collect_without_sources_is_empty() -> None:
    with patch("collector.fetch_events") as mock_fetch:
        assert collect([], QueryFilter(), timeout=5) == {}
    mock_fetch.assert_not_called()


def test_collect_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        collect(["wss://one"], QueryFilter(), timeout=0)


def test_fetch_into_after_seal_leaves_view_untouched() -> None:
    view = DedupedView()
    view.merge([_record("a", 100)])
    view.seal()

    with patch("collector.fetch_events", return_value=[_record("a", 200), _record("late", 1)]):
        assert _fetch_into(view, "wss://slow", QueryFilter(), time.monotonic() + 5) is None

    assert view.snapshot() == {"a": _record("a", 100)}
