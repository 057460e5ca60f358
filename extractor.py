"""Recover the relays each author advertises in their relay list metadata."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from models import Record, RelayReferences

LOGGER = logging.getLogger(__name__)

RELAY_TAG = "r"
PROXY_TAG = "proxy"
# Accounts bridged in from the fediverse carry this proxy protocol marker.
BRIDGED_PROTOCOL = "activitypub"


def normalize_relay_url(raw: str) -> str | None:
    """Trim whitespace and one trailing slash; keep only websocket URLs."""
    url = raw.strip()
    if url.endswith("/"):
        url = url[:-1]
    if not url.startswith("ws"):
        return None
    return url


def references_for_record(record: Record) -> RelayReferences:
    """Scan one record's tags for relay URLs and the bridged-account marker.

    Records are eligible unless a ``proxy`` tag names the activitypub
    protocol in its third element. Short or empty entries are skipped.
    """
    relays: set[str] = set()
    eligible = True

    for tag in record.tags:
        if len(tag) < 2:
            continue
        name = tag[0]
        if name == RELAY_TAG:
            url = normalize_relay_url(tag[1])
            if url is not None:
                relays.add(url)
        elif name == PROXY_TAG and len(tag) >= 3 and tag[2] == BRIDGED_PROTOCOL:
            eligible = False

    return RelayReferences(relays=frozenset(relays), eligible=eligible)


def extract_references(view: Mapping[str, Record]) -> dict[str, RelayReferences]:
    """Map every author in the deduplicated view to their relay references."""
    extracted = {author: references_for_record(record) for author, record in view.items()}

    ineligible = sum(1 for refs in extracted.values() if not refs.eligible)
    LOGGER.info(
        "Extracted relay references: authors=%s, ineligible=%s, without_relays=%s",
        len(extracted),
        ineligible,
        sum(1 for refs in extracted.values() if not refs.relays),
    )
    return extracted
