"""Configuration constants, paths, and tag tables."""

import os
import pathlib
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure base paths
BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
CACHE_DIR = BASE_DIR / "cache"
OUTPUT_DIR = BASE_DIR / "output"

# Most recent successful raw response, replayable as a file input.
LAST_RESPONSE_PATH = pathlib.Path(
    os.environ.get("CITYSCENE_CACHE_PATH", str(CACHE_DIR / "last_response.json"))
)

# ── Overpass ─────────────────────────────────────────────────────────────
OVERPASS_URL = os.environ.get(
    "CITYSCENE_OVERPASS_URL", "https://overpass-api.de/api/interpreter")
OVERPASS_TIMEOUT = 60
OVERPASS_MAX_ATTEMPTS = 2
OVERPASS_MAX_PAUSE = 10.0  # seconds between retries on 429/504

# Mean Earth radius (IUGG), metres
EARTH_RADIUS = 6371008.8

# ── Building defaults ────────────────────────────────────────────────────
DEFAULT_BUILDING_HEIGHT = 10.0  # metres, used when no height/levels tag
LEVEL_HEIGHT = 3.0              # metres per building:levels step

# ── Road and waterway widths ─────────────────────────────────────────────
# Full carriageway width in metres.  *_link classes fall back to their base
# class (motorway_link -> motorway).
HIGHWAY_WIDTHS = {
    'motorway': 16.0,
    'trunk': 14.0,
    'primary': 12.0,
    'secondary': 10.0,
    'tertiary': 8.0,
    'unclassified': 6.0,
    'residential': 6.0,
    'living_street': 5.0,
    'service': 4.0,
    'pedestrian': 4.0,
    'track': 3.0,
    'cycleway': 2.0,
    'footway': 2.0,
    'bridleway': 2.0,
    'path': 1.5,
    'steps': 1.5,
}
MIN_ROAD_WIDTH = 1.0  # unknown highway classes

WATERWAY_WIDTHS = {
    'river': 8.0,
    'canal': 6.0,
    'stream': 2.0,
    'ditch': 1.0,
    'drain': 1.0,
}
DEFAULT_WATERWAY_WIDTH = 2.0

# Landuse values that classify as green areas
GREEN_LANDUSE = frozenset({'grass', 'forest', 'park'})

# Colours per scene object kind (RGBA, used by the GLB exporter)
KIND_COLORS = {
    'building': [0.87, 0.87, 0.87, 1.0],   # Default grey
    'road': [0.25, 0.25, 0.25, 1.0],       # Dark grey
    'water': [0.0, 0.1, 0.6, 1.0],         # Medium blue
    'green': [0.0, 0.4, 0.0, 1.0],         # Medium green
    'terrain': [0.55, 0.5, 0.4, 1.0],      # Earth brown
}

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)
