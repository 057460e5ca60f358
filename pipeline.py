"""Collect -> extract -> aggregate, run once per invocation."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from aggregator import aggregate
from collector import collect
from extractor import extract_references
from models import QueryFilter

DEFAULT_TIMEOUT_SECONDS = 20.0


def count_relay_users(
    sources: Sequence[str],
    query_filter: QueryFilter | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, int]:
    """Return relay URL -> number of distinct authors listing it.

    Always returns a mapping, possibly empty; a relay absent from it has a
    count of zero.
    """
    view = collect(sources, query_filter or QueryFilter(), timeout)
    extracted = extract_references(view)
    counts = aggregate(extracted)

    logging.info(
        "Pipeline complete: authors=%s, eligible=%s, relays=%s",
        len(view),
        sum(1 for refs in extracted.values() if refs.eligible),
        len(counts),
    )
    return counts
