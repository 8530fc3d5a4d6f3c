"""Load requests and the fetch step that turns them into raw JSON text."""

import logging
import pathlib
import time
from dataclasses import dataclass
from enum import Enum

import requests

from .constants import (
    OVERPASS_MAX_ATTEMPTS, OVERPASS_MAX_PAUSE, OVERPASS_TIMEOUT, OVERPASS_URL,
)

logger = logging.getLogger(__name__)


class QueryError(Exception):
    """The user's query text cannot be turned into a load request."""


class FetchError(Exception):
    """Network, API or file failure while obtaining the raw response."""


class QueryKind(str, Enum):
    CITY = "city"
    FILE = "file"
    OVERPASS = "overpass"
    REPLAY = "replay"


# Ways of interest inside the named area, their nodes, and multipolygon
# relations built from them.
CITY_QUERY_TEMPLATE = """[out:json][timeout:{timeout}];
area[name="{name}"]->.searchArea;
(
  way["highway"](area.searchArea);
  way["building"](area.searchArea);
  way["landuse"](area.searchArea);
  way["natural"="water"](area.searchArea);
  way["waterway"~"river|stream|canal|ditch"](area.searchArea);
  relation["type"="multipolygon"]["building"](area.searchArea);
  relation["type"="multipolygon"]["natural"="water"](area.searchArea);
  relation["type"="multipolygon"]["landuse"](area.searchArea);
)->.result;
(.result; .result >>;);
out body;"""


def city_query(name: str) -> str:
    """Overpass QL selecting the renderable features of a named city."""
    name = name.strip()
    if not name:
        raise QueryError("city name is empty")
    if '"' in name:
        raise QueryError("city query may not contain quotes")
    return CITY_QUERY_TEMPLATE.format(name=name, timeout=OVERPASS_TIMEOUT)


@dataclass(frozen=True)
class DataQuery:
    kind: QueryKind
    value: str = ""

    @property
    def identity(self) -> str:
        """Stable key of what was asked for; seeds the terrain."""
        return f"{self.kind.value}:{self.value}"

    @classmethod
    def parse(cls, kind, text: str = "") -> "DataQuery":
        """Validate user input for *kind* and build the request."""
        kind = QueryKind(kind)
        if kind == QueryKind.CITY:
            city_query(text)
            return cls(kind, text.strip())
        if kind == QueryKind.OVERPASS:
            if not text.strip():
                raise QueryError("Overpass query is empty")
            return cls(kind, text)
        if kind == QueryKind.FILE:
            path = pathlib.Path(text)
            if not path.suffix:
                raise QueryError(f"file {text!r} has no extension")
            if path.suffix.lower() != '.json':
                raise QueryError(f"unsupported file extension {path.suffix!r}")
            return cls(kind, str(path))
        return cls(QueryKind.REPLAY)

    def overpass_ql(self) -> str:
        if self.kind == QueryKind.CITY:
            return city_query(self.value)
        if self.kind == QueryKind.OVERPASS:
            return self.value
        raise QueryError(f"{self.kind.value} queries are not sent to Overpass")


# ── Fetch ────────────────────────────────────────────────────────────────

def overpass_request(ql: str, url: str = OVERPASS_URL,
                     session: requests.Session | None = None) -> str:
    """POST *ql* to Overpass and return the response text.

    429 and 504 responses are retried with a capped pause, at most
    OVERPASS_MAX_ATTEMPTS requests in total.
    """
    http = session or requests
    for attempt in range(1, OVERPASS_MAX_ATTEMPTS + 1):
        logger.info(f"POST {url} ({len(ql)} chars, attempt {attempt}/{OVERPASS_MAX_ATTEMPTS})")
        try:
            response = http.post(url, data={'data': ql}, timeout=OVERPASS_TIMEOUT)
        except requests.RequestException as e:
            raise FetchError(f"Overpass request failed: {e}") from e

        if response.status_code in {429, 504}:
            if attempt == OVERPASS_MAX_ATTEMPTS:
                break
            try:
                pause = float(response.headers.get('Retry-After', 1))
            except ValueError:
                pause = 1.0
            pause = min(max(pause, 0.0), OVERPASS_MAX_PAUSE)
            logger.warning(f"Overpass responded {response.status_code} {response.reason}: "
                           f"retrying in {pause:.0f}s")
            time.sleep(pause)
            continue

        if response.status_code != 200:
            raise FetchError(f"Overpass responded {response.status_code} {response.reason}")
        return response.text

    raise FetchError(f"Overpass API failed after {OVERPASS_MAX_ATTEMPTS} attempts")


def fetch(query: DataQuery, cache=None, session=None) -> str:
    """Obtain the raw response for *query*; raises FetchError on failure."""
    if query.kind in (QueryKind.CITY, QueryKind.OVERPASS):
        return overpass_request(query.overpass_ql(), session=session)

    if query.kind == QueryKind.FILE:
        path = pathlib.Path(query.value)
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise FetchError(f"Cannot read {path}: {e}") from e
        logger.info(f"Read {len(text)} bytes from {path}")
        return text

    if cache is None:
        raise FetchError("No response cache configured for replay")
    text = cache.load()
    if text is None:
        raise FetchError(f"No cached response at {cache.path}")
    return text
