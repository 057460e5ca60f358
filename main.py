"""CLI entrypoint for the daily Nostr relay ranking."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence
from datetime import date

from dotenv import load_dotenv

from models import DEFAULT_QUERY_LIMIT, QueryFilter
from pipeline import DEFAULT_TIMEOUT_SECONDS, count_relay_users
from report import build_ranking, generate_report
from stats_store import replace_daily_counts

# Mostly Japanese-community relays; the ranking targets that audience.
DEFAULT_RELAYS = (
    "wss://yabu.me",
    "wss://relay-jp.nostr.wirednet.jp",
    "wss://nostr.compile-error.net",
    "wss://cagliostr.compile-error.net",
    "wss://r.kojira.io",
    "wss://nostream.ocha.one",
    "wss://nrelay.c-stellar.net",
    "wss://relay.nostr.wirednet.jp",
)


def parse_args() -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Count Nostr relay users from relay list metadata")
    parser.add_argument(
        "--relay",
        action="append",
        dest="relays",
        metavar="URL",
        help="Relay to query; repeat for several. Overrides NOSTR_RELAYS.",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Overall query deadline in seconds")
    parser.add_argument("--output", default=None, help="Path of the HTML ranking page")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Query and count, log the ranking, but write neither the stats CSV nor the page",
    )
    return parser.parse_args()


def relays_from_env() -> list[str]:
    """Relay list from NOSTR_RELAYS (comma separated), or the built-in list."""
    raw = os.getenv("NOSTR_RELAYS", "")
    relays = [url.strip() for url in raw.split(",") if url.strip()]
    return relays or list(DEFAULT_RELAYS)


def run(
    relays: Sequence[str],
    timeout: float,
    query_limit: int,
    dry_run: bool,
    output_path: str | None = None,
) -> dict[str, int]:
    """Run one daily cycle: count, store, report."""
    logging.info("Querying %s relays (timeout=%ss, limit=%s)", len(relays), timeout, query_limit)
    counts = count_relay_users(relays, QueryFilter(limit=query_limit), timeout)

    if dry_run:
        for rank, relay in enumerate(build_ranking(counts), 1):
            logging.info("[dry-run] %3d. %s %s", rank, relay.url, relay.count)
        logging.info("[dry-run] %s relays counted, nothing written", len(counts))
        return counts

    today = date.today()
    replace_daily_counts(today, counts)

    try:
        generate_report(
            counts,
            today=today,
            output_path=output_path,
            relay_count=len(relays),
            query_limit=query_limit,
        )
    except Exception as exc:  # the day's counts are already stored
        logging.warning("Report generation failed (non-fatal): %s", exc)

    return counts


def main() -> None:
    """Initialize config and execute the pipeline."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args()

    timeout = args.timeout
    if timeout is None:
        timeout = float(os.getenv("RELAY_QUERY_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    query_limit = int(os.getenv("RELAY_QUERY_LIMIT", str(DEFAULT_QUERY_LIMIT)))

    run(
        relays=args.relays or relays_from_env(),
        timeout=timeout,
        query_limit=query_limit,
        dry_run=args.dry_run,
        output_path=args.output,
    )


if __name__ == "__main__":
    main()
