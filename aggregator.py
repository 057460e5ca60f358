"""Tally distinct authors per relay."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping

from models import RelayReferences


def aggregate(extracted: Mapping[str, RelayReferences]) -> dict[str, int]:
    """Count, for each relay, how many eligible authors list it.

    Each author adds at most 1 to a relay since their references are a set.
    Ineligible authors contribute nothing. The result is unordered.
    """
    counts: Counter[str] = Counter()
    for refs in extracted.values():
        if refs.eligible:
            counts.update(refs.relays)
    return dict(counts)
