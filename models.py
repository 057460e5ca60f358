"""Shared typed models for the relay ranking pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# NIP-65 relay list metadata.
RELAY_LIST_KIND = 10002
DEFAULT_QUERY_LIMIT = 1000


class MalformedRecordError(ValueError):
    """Raised when a relay event cannot be turned into a Record."""


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Record category and result cap sent with every relay query."""

    kinds: tuple[int, ...] = (RELAY_LIST_KIND,)
    limit: int = DEFAULT_QUERY_LIMIT

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"query limit must be positive, got {self.limit}")
        if not self.kinds:
            raise ValueError("query filter needs at least one kind")

    def to_nostr(self) -> dict[str, Any]:
        return {"kinds": list(self.kinds), "limit": self.limit}


@dataclass(frozen=True, slots=True)
class Record:
    """One metadata event as returned by a relay."""

    author: str
    created_at: int
    tags: tuple[tuple[str, ...], ...]

    @classmethod
    def from_event(cls, event: Any) -> Record:
        """Build a Record from a decoded event object.

        Only the fields the pipeline needs are checked: ``pubkey``,
        ``created_at`` and ``tags``. Every tag entry must be a list of
        strings; anything else makes the whole event unusable.
        """
        if not isinstance(event, dict):
            raise MalformedRecordError("event is not an object")

        author = event.get("pubkey")
        if not isinstance(author, str) or not author:
            raise MalformedRecordError("event has no pubkey")

        created_at = event.get("created_at")
        # bool is an int subclass
        if not isinstance(created_at, int) or isinstance(created_at, bool):
            raise MalformedRecordError(f"event from {author} has no integer created_at")

        raw_tags = event.get("tags", [])
        if not isinstance(raw_tags, list):
            raise MalformedRecordError(f"event from {author} has non-list tags")

        tags: list[tuple[str, ...]] = []
        for entry in raw_tags:
            if not isinstance(entry, list) or not all(isinstance(v, str) for v in entry):
                raise MalformedRecordError(f"event from {author} has an unparsable tag: {entry!r}")
            tags.append(tuple(entry))

        return cls(author=author, created_at=created_at, tags=tuple(tags))


@dataclass(frozen=True, slots=True)
class RelayReferences:
    """Candidate relays found in one author's record, plus whether they count."""

    relays: frozenset[str]
    eligible: bool = True


@dataclass(frozen=True, slots=True)
class RelayInfo:
    """Subset of a relay information document (NIP-11)."""

    name: str = ""
    description: str = ""
    pubkey: str = ""
    contact: str = ""


@dataclass(frozen=True, slots=True)
class RankedRelay:
    """One row of the published ranking."""

    url: str
    count: int
    description: str = ""
