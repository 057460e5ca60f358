"""CSV time series of daily relay user counts."""

from __future__ import annotations

import csv
import logging
import os
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path

STATS_CSV_PATH = os.getenv("STATS_CSV_PATH", "relay_stats.csv")

LOGGER = logging.getLogger(__name__)

CSV_COLUMNS = [
    "date",        # ISO YYYY-MM-DD of the run
    "relay_url",   # normalized websocket URL
    "user_count",  # distinct authors listing the relay that day
]


def replace_daily_counts(day: date, counts: Mapping[str, int], csv_path: str | None = None) -> int:
    """Store ``counts`` as the tally for ``day``, replacing any earlier rows for it.

    Rows for other days are kept as they are. The file is rewritten through
    a temporary sibling and swapped in with ``os.replace``.

    Returns:
        The number of rows written for ``day``.
    """
    path = Path(csv_path or STATS_CSV_PATH)
    day_key = day.isoformat()

    kept = [row for row in _read_rows(path) if row.get("date") != day_key]
    new_rows = [
        {"date": day_key, "relay_url": url, "user_count": count}
        for url, count in sorted(counts.items())
    ]

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with tmp_path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=CSV_COLUMNS, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(kept)
            writer.writerows(new_rows)
        os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise

    LOGGER.info("Stored %d relay counts for %s in %s", len(new_rows), day_key, path)
    return len(new_rows)


def load_history(
    relay_urls: Iterable[str],
    days: Iterable[date],
    csv_path: str | None = None,
) -> dict[str, dict[date, int]]:
    """Read back counts for the given relays and days.

    Every requested relay gets an entry; days with no stored row are absent
    from its inner mapping.
    """
    wanted_relays = set(relay_urls)
    wanted_days = {day.isoformat(): day for day in days}
    history: dict[str, dict[date, int]] = {url: {} for url in wanted_relays}

    for row in _read_rows(Path(csv_path or STATS_CSV_PATH)):
        url = row.get("relay_url")
        day = wanted_days.get(row.get("date") or "")
        if url not in wanted_relays or day is None:
            continue
        try:
            history[url][day] = int(row.get("user_count") or "")
        except ValueError:
            LOGGER.warning("Skipping unreadable count for %s on %s: %r", url, day, row.get("user_count"))

    return history


def load_daily_counts(day: date, csv_path: str | None = None) -> dict[str, int]:
    """All relay counts stored for one day."""
    day_key = day.isoformat()
    counts: dict[str, int] = {}
    for row in _read_rows(Path(csv_path or STATS_CSV_PATH)):
        if row.get("date") != day_key:
            continue
        try:
            counts[row["relay_url"]] = int(row.get("user_count") or "")
        except (KeyError, ValueError):
            LOGGER.warning("Skipping unreadable row for %s: %r", day_key, row)
    return counts


def _read_rows(path: Path) -> list[dict[str, str]]:
    if not path.exists() or path.stat().st_size == 0:
        return []
    with path.open(newline="", encoding="utf-8") as fh:
        return list(csv.DictReader(fh))
