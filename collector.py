"""Concurrent fan-out over all relays, merged into one newest-per-author view."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from collections.abc import Iterable, Sequence

from models import QueryFilter, Record
from relay_client import RelayError, RelayTimeoutError, fetch_events

LOGGER = logging.getLogger(__name__)


class DedupedView:
    """Author -> newest Record, safe to merge into from many threads.

    A stored record is replaced only by one with a strictly greater
    ``created_at``; on a tie the record merged first stays. Once sealed,
    merges are dropped so late fetches cannot change a returned result.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, Record] = {}
        self._sealed = False

    def merge(self, records: Iterable[Record]) -> bool:
        """Merge a batch of records. Returns False if the view was already sealed."""
        with self._lock:
            if self._sealed:
                return False
            for record in records:
                stored = self._records.get(record.author)
                if stored is None or record.created_at > stored.created_at:
                    self._records[record.author] = record
            return True

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    def snapshot(self) -> dict[str, Record]:
        with self._lock:
            return dict(self._records)


def collect(sources: Sequence[str], query_filter: QueryFilter, timeout: float) -> dict[str, Record]:
    """Query every source concurrently under one deadline and merge the results.

    Never raises for source failures: a relay that errors or misses the
    deadline contributes nothing. With no sources, or when every source
    fails, the result is an empty dict.

    Args:
        sources: Relay websocket URLs.
        query_filter: Kinds and per-relay limit for the query.
        timeout: Seconds from now until every outstanding fetch is abandoned.
    """
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")

    view = DedupedView()
    if not sources:
        LOGGER.info("No relays configured, nothing to collect")
        return view.snapshot()

    deadline = time.monotonic() + timeout
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=len(sources), thread_name_prefix="relay-fetch"
    )
    try:
        future_map = {
            executor.submit(_fetch_into, view, source, query_filter, deadline): source
            for source in sources
        }
        _, not_done = concurrent.futures.wait(
            future_map, timeout=max(0.0, deadline - time.monotonic())
        )
        view.seal()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for future, source in future_map.items():
        if future in not_done:
            LOGGER.warning("%s: abandoned at deadline (%.1fs)", source, timeout)
        elif future.exception() is not None:
            LOGGER.error("%s: fetch crashed: %s", source, future.exception())

    records = view.snapshot()
    LOGGER.info(
        "Collected %d authors from %d relays (%d abandoned)",
        len(records),
        len(sources),
        len(not_done),
    )
    return records


def _fetch_into(view: DedupedView, source: str, query_filter: QueryFilter, deadline: float) -> None:
    try:
        records = fetch_events(source, query_filter, deadline)
    except RelayTimeoutError as exc:
        LOGGER.warning("timeout %s", exc)
        return
    except RelayError as exc:
        LOGGER.warning("error %s", exc)
        return

    if not view.merge(records):
        LOGGER.warning("%s: %d events arrived after the deadline, discarded", source, len(records))
        return
    LOGGER.info("%s -> %d events", source, len(records))
