"""Watertight extrusion of triangulated footprints, ribbons and flat surfaces."""

import math
import logging

import numpy as np

from .models import Mesh, ProjectedPoint
from .triangulation import Triangulation

logger = logging.getLogger(__name__)

UP = np.array([0.0, 0.0, 1.0])
DOWN = np.array([0.0, 0.0, -1.0])
# Longest joint offset on a sharp ribbon bend, in half widths
MITRE_LIMIT = 2.0


def _cap(xy: np.ndarray, triangles: np.ndarray, z: float, normal: np.ndarray,
         origin: np.ndarray, tile: float) -> Mesh:
    n = len(xy)
    vertices = np.column_stack([xy, np.full(n, z)])
    normals = np.tile(normal, (n, 1))
    uvs = (xy - origin) / tile
    return Mesh(vertices, normals, uvs, triangles)


def _walls(xy: np.ndarray, rings, base: float, top: float, tile: float) -> Mesh:
    """One quad per boundary edge, flat-shaded with outward normals.

    Outer rings are CCW and holes CW, so ``edge x up`` always points away
    from the solid.
    """
    vertices, normals, uvs, triangles = [], [], [], []
    for ring in rings:
        u = 0.0
        count = len(ring)
        for k in range(count):
            x0, y0 = xy[ring[k]]
            x1, y1 = xy[ring[(k + 1) % count]]
            length = math.hypot(x1 - x0, y1 - y0)
            if length == 0.0:
                continue
            edge = np.array([x1 - x0, y1 - y0, 0.0])
            normal = np.cross(edge, UP) / length

            vi = len(vertices)
            vertices.extend([[x0, y0, base], [x1, y1, base],
                             [x1, y1, top], [x0, y0, top]])
            normals.extend([normal] * 4)
            u1 = u + length
            uvs.extend([[u / tile, base / tile], [u1 / tile, base / tile],
                        [u1 / tile, top / tile], [u / tile, top / tile]])
            triangles.extend([[vi, vi + 1, vi + 2], [vi, vi + 2, vi + 3]])
            u = u1

    if not vertices:
        return Mesh.empty()
    return Mesh(np.array(vertices, dtype=np.float64),
                np.array(normals, dtype=np.float64),
                np.array(uvs, dtype=np.float64),
                np.array(triangles, dtype=np.int64))


def extrude(tri: Triangulation, top: float, base: float = 0.0,
            tile: float = 4.0) -> Mesh:
    """Lift a triangulated footprint into a closed prism from *base* to *top*.

    The bottom cap reuses the triangulation with reversed winding (normal
    facing down), the top cap keeps its winding (normal up), and
    every boundary edge of every ring becomes a two-triangle wall quad.
    Vertex count is ``2 * len(tri.vertices) + 4 * edges``.
    """
    if tri.is_empty:
        return Mesh.empty()

    xy = np.array(tri.vertices, dtype=np.float64)
    faces = np.array(tri.triangles, dtype=np.int64)
    origin = xy.min(axis=0)

    bottom = _cap(xy, faces[:, [0, 2, 1]], base, DOWN, origin, tile)
    roof = _cap(xy, faces, top, UP, origin, tile)
    walls = _walls(xy, tri.rings, base, top, tile)
    return Mesh.merge([bottom, roof, walls])


def surface(tri: Triangulation, z: float = 0.0, tile: float = 4.0) -> Mesh:
    """A single upward-facing cap, for water and green areas."""
    if tri.is_empty:
        return Mesh.empty()
    xy = np.array(tri.vertices, dtype=np.float64)
    faces = np.array(tri.triangles, dtype=np.int64)
    return _cap(xy, faces, z, UP, xy.min(axis=0), tile)


# ── Ribbons ──────────────────────────────────────────────────────────────

def _left_normal(a, b):
    dx, dy = b[0] - a[0], b[1] - a[1]
    length = math.hypot(dx, dy)
    return -dy / length, dx / length


def ribbon_triangulation(polyline, width: float) -> Triangulation:
    """Strip of quads of the given *width* centred on *polyline*.

    Each interior joint is mitred so both sides stay half a width from
    either segment.  The mitre is capped at MITRE_LIMIT half widths on
    sharp bends, and a full U-turn keeps the incoming offset.
    Vertices are ``left[0..n-1] + right[0..n-1]``; the single ring walks the
    right side forward and the left side back, counter-clockwise.
    """
    points = []
    for p in polyline:
        p = ProjectedPoint(float(p[0]), float(p[1]))
        if not points or p != points[-1]:
            points.append(p)
    if len(points) < 2 or width <= 0:
        return Triangulation()

    half = width / 2.0
    seg_normals = [_left_normal(points[i], points[i + 1])
                   for i in range(len(points) - 1)]

    left, right = [], []
    for i, (x, y) in enumerate(points):
        if i == 0:
            nx, ny = seg_normals[0]
        elif i == len(points) - 1:
            nx, ny = seg_normals[-1]
        else:
            (ax, ay), (bx, by) = seg_normals[i - 1], seg_normals[i]
            mx, my = (ax + bx) / 2.0, (ay + by) / 2.0
            length_sq = mx * mx + my * my
            if length_sq < 1e-12:
                nx, ny = ax, ay
            else:
                scale = min(1.0 / length_sq, MITRE_LIMIT / math.sqrt(length_sq))
                nx, ny = mx * scale, my * scale
        left.append(ProjectedPoint(x + nx * half, y + ny * half))
        right.append(ProjectedPoint(x - nx * half, y - ny * half))

    n = len(points)
    triangles = []
    for i in range(n - 1):
        triangles.append((i, n + i, n + i + 1))
        triangles.append((i, n + i + 1, i + 1))
    ring = list(range(n, 2 * n)) + list(range(n - 1, -1, -1))
    return Triangulation(left + right, triangles, [ring])


def extrude_ribbon(polyline, width: float, top: float, base: float = 0.0,
                   tile: float = 4.0) -> Mesh:
    return extrude(ribbon_triangulation(polyline, width), top, base, tile)
