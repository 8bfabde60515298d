"""Central configuration for the trip detection and road-matching pipeline.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Service URLs and the database location are read from
environment variables (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
# Any SQLAlchemy URL. SQLite is fine for a single worker.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///trip_mileage.db")


# ---------------------------------------------------------------------------
# Map-matching service
# ---------------------------------------------------------------------------
# Default /match endpoint base URL. Empty means "not configured"; matching
# refuses to start without it.
MATCH_SERVICE_URL = os.getenv("MATCH_SERVICE_URL", "").rstrip("/")

# Optional JSON list of regional endpoints, checked in order against the first
# fix of a trip. Each entry: {"name", "min_lat", "min_lon", "max_lat",
# "max_lon", "url"}.
MATCH_SERVICE_REGIONS = os.getenv("MATCH_SERVICE_REGIONS", "")

# Routing profile path component used in /match/v1/<profile>/.
MATCH_SERVICE_PROFILE = os.getenv("MATCH_SERVICE_PROFILE", "driving")

# Request timeout in seconds. This is the only latency bound on a batch run.
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 15.0)

# HTTP session pool sizes. Matching is sequential so small pools suffice.
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4

# Transport-level retries for 502/503/504 before a trip is recorded as failed.
HTTP_MAX_RETRIES = _env_int("HTTP_MAX_RETRIES", 2)

# Fixed pause (seconds) between successive matcher calls in a batch run.
MATCH_CALL_DELAY_SECONDS = _env_float("MATCH_CALL_DELAY_SECONDS", 0.2)

# A trip left in "processing" longer than this may be claimed again.
MATCH_CLAIM_TIMEOUT_SECONDS = _env_int("MATCH_CLAIM_TIMEOUT_SECONDS", 600)


# ---------------------------------------------------------------------------
# Fix filtering
# ---------------------------------------------------------------------------
# Fixes reporting a worse accuracy (metres) are dropped before segmentation.
MAX_ACCURACY_M = _env_float("MAX_ACCURACY_M", 200.0)

# Instantaneous speeds above this (km/h) are treated as sensor glitches.
MAX_SPEED_KMH = _env_float("MAX_SPEED_KMH", 200.0)

# Accuracy assumed for the noise floor when a fix does not report one.
DEFAULT_ACCURACY_M = _env_float("DEFAULT_ACCURACY_M", 10.0)

# Both fixes reporting a sensor speed below this (m/s) means stationary.
SENSOR_STATIONARY_MPS = _env_float("SENSOR_STATIONARY_MPS", 0.5)

# Fixes worse than this (metres) count towards a trip's low-accuracy tally.
LOW_ACCURACY_M = _env_float("LOW_ACCURACY_M", 50.0)


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------
MOVEMENT_THRESHOLD_KMH = _env_float("MOVEMENT_THRESHOLD_KMH", 8.0)
STATIONARY_THRESHOLD_KMH = _env_float("STATIONARY_THRESHOLD_KMH", 3.0)
STATIONARY_GAP_MINUTES = _env_float("STATIONARY_GAP_MINUTES", 3.0)
GPS_GAP_MINUTES = _env_float("GPS_GAP_MINUTES", 15.0)

# Multiplier turning summed straight-line segments into a road estimate.
DISTANCE_CORRECTION_FACTOR = _env_float("DISTANCE_CORRECTION_FACTOR", 1.3)

# Trips below the minimum for their class are discarded.
MIN_WALKING_DISPLACEMENT_KM = _env_float("MIN_WALKING_DISPLACEMENT_KM", 0.1)
MIN_DRIVING_DISTANCE_KM = _env_float("MIN_DRIVING_DISTANCE_KM", 0.5)


# ---------------------------------------------------------------------------
# Transport-mode classification
# ---------------------------------------------------------------------------
DRIVING_AVG_SPEED_KMH = 10.0
WALKING_AVG_SPEED_KMH = 4.0
SLOW_SEGMENT_SPEED_KMH = 5.0
SLOW_SEGMENT_RATIO = 0.8
WALKING_MAX_DISTANCE_KM = 1.0
# Tiebreak when the grey zone has too few segments to judge.
GREY_ZONE_TIEBREAK_KMH = 6.0


# ---------------------------------------------------------------------------
# Road matching
# ---------------------------------------------------------------------------
MATCH_MAX_POINTS = _env_int("MATCH_MAX_POINTS", 100)
MATCH_MIN_FIXES = 3
MATCH_MAX_ATTEMPTS = 3

# Per-point search radius (metres) sent to the matcher.
MATCH_RADIUS_MIN_M = 20.0
MATCH_RADIUS_MAX_M = 100.0
MATCH_RADIUS_DEFAULT_M = 30.0

# Validation gates.
MATCH_MIN_COVERAGE = 0.5
MATCH_MIN_CONFIDENCE = 0.05
MATCH_CONFIDENCE_RESCUE_COVERAGE = 0.8
MATCH_ANOMALY_RATIO = 3.0


# ---------------------------------------------------------------------------
# Batch reprocessing
# ---------------------------------------------------------------------------
BATCH_MAX_TRIPS = 500
BATCH_DEFAULT_LIMIT = 100
