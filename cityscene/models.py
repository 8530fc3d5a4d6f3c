"""Data classes for raw elements, rings, features and meshes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import numpy as np


# ── Raw elements ─────────────────────────────────────────────────────────

@dataclass
class Node:
    id: int
    lat: float
    lon: float
    tags: dict = field(default_factory=dict)
    index: int = -1  # position in the input element list


@dataclass
class Way:
    id: int
    node_ids: list
    tags: dict = field(default_factory=dict)
    index: int = -1

    @property
    def is_closed(self) -> bool:
        return len(self.node_ids) >= 4 and self.node_ids[0] == self.node_ids[-1]


@dataclass
class Member:
    role: str
    type: str
    ref: int


@dataclass
class Relation:
    id: int
    members: list
    tags: dict = field(default_factory=dict)
    index: int = -1


@dataclass
class Rejected:
    """An input element dropped during ingestion."""
    index: int
    kind: str
    id: int | None
    reason: str


@dataclass
class Dataset:
    nodes: dict = field(default_factory=dict)
    ways: dict = field(default_factory=dict)
    relations: dict = field(default_factory=dict)
    rejected: list = field(default_factory=list)

    def member_way_ids(self) -> set:
        """Ids of every way referenced by some relation."""
        return {m.ref for r in self.relations.values()
                for m in r.members if m.type == 'way'}

    def is_empty(self) -> bool:
        return not (self.nodes or self.ways or self.relations)


# ── Projected geometry ───────────────────────────────────────────────────

class ProjectedPoint(NamedTuple):
    x: float
    y: float


@dataclass
class BoundingBox:
    """Axis-aligned extent in local metres."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def expanded(self, margin: float) -> "BoundingBox":
        return BoundingBox(self.min_x - margin, self.min_y - margin,
                           self.max_x + margin, self.max_y + margin)


def signed_area(points) -> float:
    """Shoelace area of an open or closed point sequence (CCW positive)."""
    n = len(points)
    if n < 3:
        return 0.0
    total = 0.0
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        total += x0 * y1 - x1 * y0
    return total / 2.0


@dataclass
class Ring:
    """Closed polygon boundary: ``points[0] == points[-1]``."""
    points: list

    @property
    def vertices(self) -> list:
        """The ring without its closing duplicate."""
        return self.points[:-1]

    @property
    def area(self) -> float:
        return signed_area(self.vertices)

    @property
    def is_ccw(self) -> bool:
        return self.area > 0

    def reversed(self) -> "Ring":
        return Ring(list(reversed(self.points)))

    def oriented(self, ccw: bool = True) -> "Ring":
        return self if self.is_ccw == ccw else self.reversed()


class Category(str, Enum):
    building = "building"
    road = "road"
    water = "water"
    green = "green"
    other = "other"


@dataclass
class AreaFeature:
    category: Category
    outer: Ring
    holes: list = field(default_factory=list)
    attributes: dict = field(default_factory=dict)
    source: tuple = ("way", 0)


@dataclass
class LineFeature:
    """An open polyline feature: a road, or a waterway drawn as a ribbon."""
    category: Category
    points: list
    attributes: dict = field(default_factory=dict)
    source: tuple = ("way", 0)


# ── Meshes ───────────────────────────────────────────────────────────────

@dataclass
class Mesh:
    """Engine-agnostic triangle mesh; z is up."""
    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    triangles: np.ndarray

    @classmethod
    def empty(cls) -> "Mesh":
        return cls(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 2)),
                   np.zeros((0, 3), dtype=np.int64))

    @classmethod
    def merge(cls, meshes) -> "Mesh":
        meshes = [m for m in meshes if m.vertex_count]
        if not meshes:
            return cls.empty()
        offsets = np.cumsum([0] + [m.vertex_count for m in meshes[:-1]])
        return cls(
            np.concatenate([m.vertices for m in meshes]),
            np.concatenate([m.normals for m in meshes]),
            np.concatenate([m.uvs for m in meshes]),
            np.concatenate([m.triangles + off for m, off in zip(meshes, offsets)]),
        )

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)
