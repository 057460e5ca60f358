"""Post-run reporting: renders the relay ranking page from the day's counts.

The page has two parts:

  trend chart:   an ECharts line chart of the last REPORT_HISTORY_DAYS days
                 of user counts for the top REPORT_CHART_TOP_N relays, read
                 back from the stats CSV.

  ranking table: every relay with at least REPORT_MIN_USERS users, sorted
                 by user count, with the description each relay publishes
                 in its information document.

Runnable standalone against the stats CSV (re-renders today's page):
    python report.py
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from jinja2 import Environment

from models import RankedRelay
from relay_info import fetch_descriptions
from stats_store import load_daily_counts, load_history

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configurable paths / limits
# ---------------------------------------------------------------------------

OUTPUT_PATH = os.getenv("OUTPUT_PATH", "index.html")
REPORT_MIN_USERS = int(os.getenv("REPORT_MIN_USERS", "20"))
REPORT_CHART_TOP_N = int(os.getenv("REPORT_CHART_TOP_N", "30"))
REPORT_HISTORY_DAYS = int(os.getenv("REPORT_HISTORY_DAYS", "20"))
RELAY_LINK_BASE = os.getenv("RELAY_LINK_BASE", "https://njump.compile-error.net/r/")

_LABEL_MAX_LEN = 30

# ---------------------------------------------------------------------------
# Page template
# ---------------------------------------------------------------------------

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Nostr Relay Ranking</title>
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <script src="https://cdn.tailwindcss.com"></script>
  <script src="https://cdn.jsdelivr.net/npm/echarts@5/dist/echarts.min.js"></script>
</head>
<body class="bg-gray-50 text-gray-900 min-h-screen">
<div class="container mx-auto px-4 py-8 max-w-7xl">
  <header class="text-center mb-12">
    <h1 class="text-4xl md:text-6xl font-bold text-indigo-600 mb-4">Nostr Relay Ranking</h1>
    <p class="text-lg text-gray-600 max-w-4xl mx-auto">
      The most used relays, counted from kind 10002 relay list metadata.
    </p>
    <p class="mt-4 text-sm text-gray-500">Updated: {{ updated_at }}</p>
  </header>

  <div id="trend-chart" style="width: 100%; height: 700px;"></div>
  <script>
    echarts.init(document.getElementById("trend-chart")).setOption({{ chart | tojson }});
  </script>

  <section class="mt-20">
    <h2 class="text-3xl font-bold text-center mb-8 text-indigo-600">
      Current ranking ({{ min_users }}+ users)
    </h2>
    <div class="overflow-x-auto rounded-xl shadow-2xl bg-white">
      <table class="w-full min-w-max table-auto">
        <thead class="bg-indigo-600 text-white">
          <tr>
            <th class="px-6 py-5 text-left">Rank</th>
            <th class="px-6 py-5 text-left">Relay</th>
            <th class="px-6 py-5 text-left">Description</th>
            <th class="px-6 py-5 text-right">Users</th>
          </tr>
        </thead>
        <tbody class="divide-y divide-gray-200">
          {% for relay in ranking %}
          <tr class="{{ 'bg-yellow-50' if loop.index <= 3 else 'bg-gray-50' }}">
            <td class="px-6 py-5 font-bold">{{ loop.index }} {{ medals.get(loop.index, '') }}</td>
            <td class="px-6 py-5 font-mono text-sm break-all">
              <a href="{{ link_base }}{{ relay.url | strip_scheme }}" target="_blank">{{ relay.url }}</a>
            </td>
            <td class="px-6 py-5 text-sm text-gray-600 max-w-xl">{{ relay.description }}</td>
            <td class="px-6 py-5 text-right font-bold">{{ relay.count }}</td>
          </tr>
          {% endfor %}
        </tbody>
      </table>
    </div>
  </section>

  <footer class="mt-20 text-center text-sm text-gray-500">
    <p>Collected from {{ relay_count }} public relays, deduplicated per author (up to {{ query_limit }} events per relay).</p>
    <p class="mt-2">Updated daily.</p>
  </footer>
</div>
</body>
</html>
"""

_MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def strip_scheme(url: str) -> str:
    for prefix in ("wss://", "ws://"):
        if url.startswith(prefix):
            return url[len(prefix):]
    return url


def series_label(url: str, count: int) -> str:
    """Chart legend entry: host part of the URL, shortened, plus today's count."""
    short = url.removeprefix("wss://")
    if len(short) > _LABEL_MAX_LEN:
        short = short[: _LABEL_MAX_LEN - 3] + "..."
    return f"{short} ({count})"


def history_days(today: date, days: int) -> list[date]:
    """The ``days`` calendar days ending with ``today``, oldest first."""
    start = today - timedelta(days=days - 1)
    return [start + timedelta(days=i) for i in range(days)]


def _environment() -> Environment:
    env = Environment(autoescape=True)
    env.filters["strip_scheme"] = strip_scheme
    return env


# ---------------------------------------------------------------------------
# Report builders
# ---------------------------------------------------------------------------


def build_ranking(
    counts: Mapping[str, int],
    min_users: int = REPORT_MIN_USERS,
    descriptions: Mapping[str, str] | None = None,
) -> list[RankedRelay]:
    """Relays with at least ``min_users`` users, most used first."""
    descriptions = descriptions or {}
    ranked = [
        RankedRelay(url=url, count=count, description=descriptions.get(url, ""))
        for url, count in counts.items()
        if count >= min_users
    ]
    ranked.sort(key=lambda r: (-r.count, r.url))
    return ranked


def build_trend_chart(
    ranking: Sequence[RankedRelay],
    history: Mapping[str, Mapping[date, int]],
    days: Sequence[date],
) -> dict[str, Any]:
    """ECharts option for the per-relay user count trend; gaps are null."""
    series = []
    for relay in ranking:
        per_day = history.get(relay.url, {})
        series.append({
            "name": series_label(relay.url, relay.count),
            "type": "line",
            "smooth": True,
            "showSymbol": False,
            "connectNulls": True,
            "data": [per_day.get(day) for day in days],
        })

    return {
        "title": {
            "text": f"Relay users over time (top {len(ranking)})",
            "left": "center",
            "textStyle": {"color": "#4f46e5", "fontSize": 24, "fontWeight": "bold"},
        },
        "tooltip": {"show": True, "trigger": "axis"},
        "legend": {"show": True, "orient": "horizontal", "bottom": "5%"},
        "grid": {"left": "3%", "right": "4%", "bottom": "35%", "top": "10%", "containLabel": True},
        "xAxis": {"type": "category", "data": [day.strftime("%m/%d") for day in days]},
        "yAxis": {"type": "value"},
        "series": series,
    }


def render_page(
    ranking: Sequence[RankedRelay],
    chart: Mapping[str, Any],
    updated_at: datetime,
    relay_count: int = 0,
    query_limit: int = 0,
    min_users: int = REPORT_MIN_USERS,
) -> str:
    template = _environment().from_string(PAGE_TEMPLATE)
    return template.render(
        ranking=ranking,
        chart=chart,
        updated_at=updated_at.strftime("%Y-%m-%d %H:%M"),
        relay_count=relay_count,
        query_limit=query_limit,
        min_users=min_users,
        medals=_MEDALS,
        link_base=RELAY_LINK_BASE,
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def generate_report(
    counts: Mapping[str, int],
    today: date | None = None,
    output_path: str | None = None,
    stats_path: str | None = None,
    relay_count: int = 0,
    query_limit: int = 0,
) -> Path:
    """Build the ranking, read the trend history back and write the HTML page."""
    today = today or date.today()

    min_users = REPORT_MIN_USERS
    descriptions = fetch_descriptions(url for url, count in counts.items() if count >= min_users)
    ranking = build_ranking(counts, min_users=min_users, descriptions=descriptions)
    LOGGER.info("report: %d relays with at least %d users", len(ranking), min_users)

    days = history_days(today, REPORT_HISTORY_DAYS)
    charted = ranking[:REPORT_CHART_TOP_N]
    history = load_history((r.url for r in charted), days, csv_path=stats_path)
    chart = build_trend_chart(charted, history, days)

    html = render_page(
        ranking,
        chart,
        updated_at=datetime.now(),
        relay_count=relay_count,
        query_limit=query_limit,
        min_users=min_users,
    )

    path = Path(output_path or OUTPUT_PATH)
    path.write_text(html, encoding="utf-8")
    LOGGER.info("report: ranking page written to %s", path)
    return path


# ---------------------------------------------------------------------------
# Standalone execution
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    print(f"Ranking page → {generate_report(load_daily_counts(date.today()))}")
