from datetime import date, datetime, timedelta, timezone
from typing import Dict, List


def utcnow() -> datetime:
    # Stored as naive UTC (DateTime columns without timezone)
    return datetime.now(timezone.utc).replace(tzinfo=None)


def window_start(days: int, today: date = None) -> date:
    # First day of a window of `days` days ending today (inclusive)
    today = today or utcnow().date()
    return today - timedelta(days=days - 1)


def fill_missing_dates(start_date: date, days: int, stats: List[Dict]) -> List[Dict]:
    """Return one entry per day from start_date, zero-filling days without stats.

    `stats` entries are keyed by their "date" field (YYYY-MM-DD). The result
    always has exactly `days` entries in ascending date order.
    """
    by_date = {s["date"]: s for s in stats}
    filled = []

    current = start_date
    for _ in range(days):
        date_str = current.isoformat()
        filled.append(by_date.get(date_str, {
            "date": date_str,
            "focus_time": 0,
            "distraction_time": 0,
            "session_count": 0,
            "focus_percentage": 0,
        }))
        current += timedelta(days=1)

    return filled
