"""Central configuration for the location tracker.

All values are constants imported by the rest of the package. Most can be
overridden from environment variables (optionally via a local `.env`).
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


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
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
# Positioning
# ---------------------------------------------------------------------------
# One-shot reads ("Live Location", initial map fix).
ONE_SHOT_TIMEOUT_SECONDS = _env_float("ONE_SHOT_TIMEOUT_SECONDS", 10.0)

# Per-update timeout for the continuous stream.
WATCH_TIMEOUT_SECONDS = _env_float("WATCH_TIMEOUT_SECONDS", 5.0)

# Delay between two reads of the continuous stream.
WATCH_POLL_INTERVAL_SECONDS = _env_float("WATCH_POLL_INTERVAL_SECONDS", 2.0)

# Public IP geolocation endpoint used by IpGeolocationBackend.
IP_GEOLOCATION_URL = os.getenv("IP_GEOLOCATION_URL", "http://ip-api.com/json/")

# IP geolocation has no real accuracy figure; report a city-level radius.
IP_GEOLOCATION_ACCURACY_M = _env_float("IP_GEOLOCATION_ACCURACY_M", 5000.0)

# Default backend for the CLI: "ip" or "replay".
POSITION_BACKEND = os.getenv("POSITION_BACKEND", "ip")

# Loop a replay file instead of reporting "unavailable" once exhausted.
REPLAY_LOOP = _env_bool("REPLAY_LOOP", False)


# ---------------------------------------------------------------------------
# Reverse geocoding
# ---------------------------------------------------------------------------
NOMINATIM_REVERSE_URL = os.getenv(
    "NOMINATIM_REVERSE_URL", "https://nominatim.openstreetmap.org/reverse"
)

# Nominatim's usage policy requires an identifying User-Agent.
GEOCODER_USER_AGENT = os.getenv(
    "GEOCODER_USER_AGENT", "location-tracker/0.1.0 (personal path recorder)"
)

# Threads resolving addresses concurrently.
GEOCODER_MAX_WORKERS = _env_int("GEOCODER_MAX_WORKERS", 4)

# Cache resolved addresses by rounded coordinate (precision 5 ~ 1 m).
GEOCODER_CACHE_ENABLED = _env_bool("GEOCODER_CACHE_ENABLED", True)
GEOCODER_CACHE_PRECISION = _env_int("GEOCODER_CACHE_PRECISION", 5)
GEOCODER_CACHE_SIZE = _env_int("GEOCODER_CACHE_SIZE", 512)
GEOCODER_CACHE_TTL_SECONDS = _env_int("GEOCODER_CACHE_TTL_SECONDS", 3600)

ADDRESS_NOT_AVAILABLE = "Address not available"
ADDRESS_FETCH_FAILED = "Unable to fetch address"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 8

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 10.0)


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------
# Human-readable timestamp written into each record at receipt time.
RECORD_TIMESTAMP_FORMAT = os.getenv("RECORD_TIMESTAMP_FORMAT", "%d/%m/%Y, %H:%M:%S")

# Seconds the CLI waits for in-flight lookups before exporting.
PENDING_LOOKUP_WAIT_SECONDS = _env_float("PENDING_LOOKUP_WAIT_SECONDS", 15.0)


# ---------------------------------------------------------------------------
# Map rendering
# ---------------------------------------------------------------------------
# Shown before the first fix arrives.
DEFAULT_MAP_CENTER = (20.5937, 78.9629)
DEFAULT_MAP_ZOOM = 5
TRACKING_MAP_ZOOM = 15
MAP_TILES = os.getenv("MAP_TILES", "OpenStreetMap")
MAP_MAX_ZOOM = 19
PATH_COLOR = "#ff8c00"
PATH_WEIGHT = 5
PATH_OPACITY = 0.9
MAP_OUTPUT_FILE = os.getenv("MAP_OUTPUT_FILE", "location_tracking_map.html")


# ---------------------------------------------------------------------------
# Excel export
# ---------------------------------------------------------------------------
EXPORT_FILE_PREFIX = "location_tracking"
EXPORT_SHEET_NAME = "Location Data"
EXPORT_DIR = os.getenv("EXPORT_DIR", ".")

EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 80  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = (
    5000  # skip autosize for very large sheets (performance guard)
)
