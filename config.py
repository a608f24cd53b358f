"""
POI dataset pipeline configuration.

Paths, geocoding settings, and dedup constants.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# --- Paths ---
PROJECT_ROOT = Path(__file__).parent
CACHE_DIR = PROJECT_ROOT / ".cache"
NOMINATIM_CACHE_PATH = Path(
    os.getenv("NOMINATIM_CACHE_PATH", str(CACHE_DIR / "nominatim.json"))
)

# --- Dataset discovery ---
# Checked relative to the search root before falling back to a directory walk
DATASET_HINTS = [
    Path("data") / "pois" / "datasets",
    Path("src") / "lib" / "data" / "pois" / "datasets",
    Path("public") / "data" / "pois" / "datasets",
]
DATASETS_DIR_NAME = "datasets"
COUNTRIES_DIR_NAME = "countries"
CITIES_DIR_NAME = "cities"
BESTOF_DIR_NAME = "bestof"

IGNORED_DIRS = {
    ".git", ".hg", ".venv", "venv", "env", "__pycache__", "node_modules",
    ".next", ".turbo", "dist", "build", "out", ".cache", ".pytest_cache",
    ".mypy_cache", ".tox", "site-packages",
}

# Files containing any of these markers are never treated as datasets
IGNORED_FILE_MARKERS = ("global", "sample", "registry")

# Curated best-of config, looked up inside each dataset root, then the project
BESTOF_FILENAMES = [
    Path(BESTOF_DIR_NAME) / "bestof.generated.json",
    Path(BESTOF_DIR_NAME) / "bestof.json",
]
BESTOF_PROJECT_PATHS = [
    Path("scripts") / "bestof.config.json",
]

# --- Nominatim (OpenStreetMap geocoding) ---
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "").strip()
NOMINATIM_MIN_INTERVAL = float(os.getenv("NOMINATIM_MIN_INTERVAL", "1.0"))  # seconds between requests
NOMINATIM_TIMEOUT = 15  # seconds
NOMINATIM_ACCEPT_LANGUAGE = os.getenv("NOMINATIM_ACCEPT_LANGUAGE", "en")
NOMINATIM_REVERSE_ZOOM = 18
ENABLE_GEOCODE = os.getenv("ENABLE_GEOCODE", "") == "1"

# Persist the cache after this many new entries, not only at the end of a run
CACHE_FLUSH_EVERY = 25

# Countries where the house number is written before the street name
HOUSE_NUMBER_FIRST_COUNTRIES = {
    "US", "GB", "IE", "CA", "AU", "NZ", "FR", "BE", "LU", "IL", "SG", "PH",
}

# --- Reconciliation ---
DEDUPE_DISTANCE_KM = 0.15

PLACE_CATEGORIES = (
    "landmarks",
    "museums",
    "food",
    "nightlife",
    "nature",
    "other",
)

UNKNOWN_CITY = "Unknown"
UNKNOWN_ADDRESS = "Unknown Place"

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
