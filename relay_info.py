"""Relay information documents (NIP-11), used for ranking descriptions."""

from __future__ import annotations

import concurrent.futures
import logging
import os
from collections.abc import Iterable
from typing import Any

import requests

from models import RelayInfo

RELAY_INFO_TIMEOUT_SECONDS = float(os.getenv("RELAY_INFO_TIMEOUT_SECONDS", "5"))
RELAY_INFO_WORKERS = 8
NOSTR_JSON_MEDIA_TYPE = "application/nostr+json"


def to_http_url(relay_url: str) -> str:
    """Map a websocket relay URL onto the HTTP URL serving its info document."""
    if relay_url.startswith("wss://"):
        return "https://" + relay_url[len("wss://"):]
    if relay_url.startswith("ws://"):
        return "http://" + relay_url[len("ws://"):]
    return relay_url


def fetch_relay_info(relay_url: str) -> RelayInfo:
    """Fetch one relay's information document; an empty RelayInfo on any failure."""
    try:
        response = requests.get(
            to_http_url(relay_url),
            headers={"Accept": NOSTR_JSON_MEDIA_TYPE},
            timeout=RELAY_INFO_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        logging.debug("Relay info: fetch failed for %s: %s", relay_url, exc)
        return RelayInfo()

    if not isinstance(payload, dict):
        logging.debug("Relay info: unexpected payload from %s", relay_url)
        return RelayInfo()

    return RelayInfo(
        name=_as_str(payload.get("name")),
        description=_as_str(payload.get("description")),
        pubkey=_as_str(payload.get("pubkey")),
        contact=_as_str(payload.get("contact")),
    )


def fetch_descriptions(relay_urls: Iterable[str]) -> dict[str, str]:
    """Fetch descriptions for many relays concurrently."""
    urls = list(dict.fromkeys(relay_urls))
    if not urls:
        return {}

    descriptions: dict[str, str] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=min(RELAY_INFO_WORKERS, len(urls))) as executor:
        future_map = {executor.submit(fetch_relay_info, url): url for url in urls}
        for future in concurrent.futures.as_completed(future_map):
            descriptions[future_map[future]] = future.result().description

    logging.info(
        "Relay info: %s/%s relays returned a description",
        sum(1 for text in descriptions.values() if text),
        len(urls),
    )
    return descriptions


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
