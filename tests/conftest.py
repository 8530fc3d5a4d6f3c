"""Shared fixtures: a small builder for OSM JSON documents in metres."""

import math

import pytest

from cityscene.constants import EARTH_RADIUS


class OsmDoc:
    """Build ``{"elements": [...]}`` documents from local metre offsets.

    ``x``/``y`` are metres east/north of (lat0, lon0).  The projector puts
    its origin at the bounding-box centre, so shapes (not absolute
    positions) survive the round trip.
    """

    def __init__(self, lat0: float = 52.0, lon0: float = 13.0):
        self.lat0 = lat0
        self.lon0 = lon0
        self.elements = []
        self._next_id = 1

    def _id(self, id):
        if id is None:
            id = self._next_id
        self._next_id = max(self._next_id, id) + 1
        return id

    def latlon(self, x: float, y: float) -> tuple:
        lat = self.lat0 + math.degrees(y / EARTH_RADIUS)
        lon = self.lon0 + math.degrees(
            x / (EARTH_RADIUS * math.cos(math.radians(self.lat0))))
        return lat, lon

    def node(self, x: float, y: float, tags=None, id=None) -> int:
        id = self._id(id)
        lat, lon = self.latlon(x, y)
        element = {"type": "node", "id": id, "lat": lat, "lon": lon}
        if tags:
            element["tags"] = tags
        self.elements.append(element)
        return id

    def way(self, node_ids, tags=None, id=None) -> int:
        id = self._id(id)
        element = {"type": "way", "id": id, "nodes": list(node_ids)}
        if tags is not None:
            element["tags"] = tags
        self.elements.append(element)
        return id

    def line(self, coords, tags=None, id=None) -> int:
        return self.way([self.node(x, y) for x, y in coords], tags, id)

    def polygon(self, coords, tags=None, id=None, close=True) -> int:
        ids = [self.node(x, y) for x, y in coords]
        if close:
            ids.append(ids[0])
        return self.way(ids, tags, id)

    def relation(self, members, tags=None, id=None) -> int:
        """*members* are ``(role, type, ref)`` triples."""
        id = self._id(id)
        element = {
            "type": "relation",
            "id": id,
            "members": [{"role": r, "type": t, "ref": ref} for r, t, ref in members],
        }
        if tags is not None:
            element["tags"] = tags
        self.elements.append(element)
        return id

    def to_dict(self) -> dict:
        return {"version": 0.6, "elements": list(self.elements)}


SQUARE_10 = [(0, 0), (10, 0), (10, 10), (0, 10)]


@pytest.fixture
def doc():
    return OsmDoc()


@pytest.fixture
def square_building_doc():
    """A closed 5-point way forming a 10 m square, tagged building=yes."""
    d = OsmDoc()
    d.polygon(SQUARE_10, {"building": "yes"})
    return d.to_dict()
