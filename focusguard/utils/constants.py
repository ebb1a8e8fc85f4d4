import os

# Engine reporting cadence. Every ingest call counts as one interval.
ANALYSIS_INTERVAL_SECONDS = int(os.getenv("ANALYSIS_INTERVAL_SECONDS", "5"))

# Allowed window for the daily statistics endpoints
MIN_STAT_DAYS = 1
MAX_STAT_DAYS = 90
DEFAULT_STAT_DAYS = 7

# latestActivity sentinels (before the first data point arrives)
INITIALIZING_SERVICE = "Initializing..."
ANALYZING_PRODUCTIVITY = "Analyzing..."
WAITING_REASON = "Waiting for data..."
WAITING_FIRST_POINT_REASON = "Waiting for first data point..."

PRODUCTIVE = "Productive"
UNPRODUCTIVE = "Unproductive"
