"""Websocket client that runs one bounded query against one Nostr relay."""

from __future__ import annotations

import json
import logging
import time
import uuid
from json import JSONDecodeError
from typing import Any

import websocket

from models import MalformedRecordError, QueryFilter, Record

LOGGER = logging.getLogger(__name__)


class RelayError(RuntimeError):
    """Base class for per-relay failures. Never fatal to a pipeline run."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class RelayConnectionError(RelayError):
    """The websocket connection could not be established."""


class RelayQueryError(RelayError):
    """The relay rejected the query or dropped the connection mid-query."""


class RelayTimeoutError(RelayError):
    """The shared deadline passed before the relay finished answering."""


def fetch_events(source: str, query_filter: QueryFilter, deadline: float) -> list[Record]:
    """Query one relay and return the records it sent, unfiltered and unordered.

    ``deadline`` is a ``time.monotonic()`` instant shared by every fetch in
    the run. Each blocking socket operation is bounded by the time left
    until it, so the connection is released no later than the deadline.

    Raises:
        RelayConnectionError: connecting failed.
        RelayQueryError: the relay closed the subscription or the socket.
        RelayTimeoutError: the deadline passed first.
    """
    remaining = _remaining(source, deadline)
    try:
        ws = websocket.create_connection(source, timeout=remaining)
    except (websocket.WebSocketTimeoutException, TimeoutError) as exc:
        raise RelayTimeoutError(source, f"connect timed out: {exc}") from exc
    except (websocket.WebSocketException, OSError, ValueError) as exc:
        raise RelayConnectionError(source, f"connect failed: {exc}") from exc

    try:
        return _query(ws, source, query_filter, deadline)
    finally:
        ws.close()


def _query(ws: Any, source: str, query_filter: QueryFilter, deadline: float) -> list[Record]:
    subscription_id = uuid.uuid4().hex[:16]
    records: list[Record] = []
    skipped = 0

    try:
        ws.send(json.dumps(["REQ", subscription_id, query_filter.to_nostr()]))

        while len(records) < query_filter.limit:
            ws.settimeout(_remaining(source, deadline))
            # Control frames return here too; pings are already answered.
            opcode, frame = ws.recv_data_frame(control_frame=True)
            if opcode == websocket.ABNF.OPCODE_CLOSE:
                raise RelayQueryError(source, "connection closed by relay")
            if opcode not in (websocket.ABNF.OPCODE_TEXT, websocket.ABNF.OPCODE_BINARY):
                continue
            message = _decode(frame.data)
            if message is None:
                continue
            if message[0] == "NOTICE":
                LOGGER.debug("%s notice: %s", source, message[1:])
                continue
            if len(message) < 2 or message[1] != subscription_id:
                continue

            kind = message[0]
            if kind == "EVENT" and len(message) >= 3:
                try:
                    records.append(Record.from_event(message[2]))
                except MalformedRecordError as exc:
                    skipped += 1
                    LOGGER.debug("%s: skipping event: %s", source, exc)
            elif kind == "EOSE":
                break
            elif kind == "CLOSED":
                reason = message[2] if len(message) >= 3 else ""
                raise RelayQueryError(source, f"subscription closed by relay: {reason}")

        _close_subscription(ws, source, subscription_id)
    except (websocket.WebSocketTimeoutException, TimeoutError) as exc:
        raise RelayTimeoutError(source, "deadline passed while waiting for events") from exc
    except (websocket.WebSocketException, OSError) as exc:
        raise RelayQueryError(source, f"query failed: {exc}") from exc

    if skipped:
        LOGGER.info("%s: skipped %d malformed events", source, skipped)
    return records


def _close_subscription(ws: Any, source: str, subscription_id: str) -> None:
    try:
        ws.send(json.dumps(["CLOSE", subscription_id]))
    except (websocket.WebSocketException, OSError) as exc:
        LOGGER.debug("%s: CLOSE not delivered: %s", source, exc)


def _remaining(source: str, deadline: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise RelayTimeoutError(source, "deadline passed")
    return remaining


def _decode(raw: Any) -> list[Any] | None:
    """Decode one relay frame; anything that is not a JSON array is dropped."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw:
        return None
    try:
        message = json.loads(raw)
    except JSONDecodeError:
        return None
    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        return None
    return message
