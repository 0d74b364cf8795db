"""Print a snapshot, trend and forecast for the configured study-record store."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

from studypulse.aggregation import LIFETIME_KEY
from studypulse.analytics import compute_forecast, compute_period_series, compute_snapshot, compute_trend
from studypulse.errors import AnalyticsError
from studypulse.fetcher import DateRange, load_bundle
from studypulse.repositories import SqlRecordSource

LOGGER = logging.getLogger("studypulse.snapshot_report")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--period", choices=["day", "week", "month", "lifetime"], default="lifetime")
    parser.add_argument("--period-key", default=LIFETIME_KEY, help="Bucket key, e.g. 2025-W10.")
    parser.add_argument("--days", type=int, default=None, help="Only read records from the last N days.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = _parse_args(argv)
    try:
        window = DateRange.last_days(args.days) if args.days else DateRange()
        bundle = load_bundle(SqlRecordSource(), window)
        records = bundle.activity_records()
        snapshot = compute_snapshot(records, args.period, args.period_key, as_of=bundle.fetched_at)
        trend = compute_trend(compute_period_series(records, "week"))
        report = compute_forecast(bundle, as_of=bundle.fetched_at)
    except (AnalyticsError, RuntimeError) as exc:
        LOGGER.exception("Failed to build analytics report: %s", exc)
        return 1

    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "snapshot": snapshot.model_dump(mode="json"),
        "trend": trend.model_dump(mode="json"),
        "forecast": report.forecast.model_dump(mode="json"),
        "expected_rank": report.rank.most_likely_rank,
        "low_data": report.low_data,
    }
    print(json.dumps(payload))
    return 0


if __name__ == "__main__":
    sys.exit(main())
