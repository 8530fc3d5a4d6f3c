"""
Ear clipping triangulation of polygons with holes.

Holes are bridged into the outer ring (rightmost hole vertex to a visible
outer vertex), producing a single contour that is then clipped ear by
ear.  Duplicate and colinear vertices are removed first.  Each call works
on its own data only, so polygons can be triangulated in parallel.
"""

import logging
import math
from dataclasses import dataclass, field

from .footprint import FeatureError
from .models import ProjectedPoint, signed_area

logger = logging.getLogger(__name__)

# Distance below which a vertex is considered to lie on its neighbours' line
COLINEAR_TOLERANCE = 1e-6
_AREA_EPS = 1e-12


class TriangulationError(FeatureError):
    """Raised when a non-degenerate polygon yields no triangles."""

    def __init__(self, message: str):
        super().__init__("triangulation_failed", message)


@dataclass
class Triangulation:
    """Unique vertices, CCW index triangles and boundary index loops.

    ``rings[0]`` is the outer boundary (CCW); the rest are holes (CW).
    """
    vertices: list = field(default_factory=list)
    triangles: list = field(default_factory=list)
    rings: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.triangles

    @property
    def area(self) -> float:
        v = self.vertices
        return sum(_cross(v[a], v[b], v[c]) for a, b, c in self.triangles) / 2.0


def _cross(a, b, c) -> float:
    """Twice the signed area of triangle abc (CCW positive)."""
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def _dist(a, b) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def _redundant(a, b, c, tol: float) -> bool:
    """True when b repeats a neighbour or lies on the line through a and c."""
    if _dist(a, b) <= tol or _dist(b, c) <= tol:
        return True
    base = _dist(a, c)
    if base <= tol:
        return True  # spike: a -> b -> back to a
    return abs(_cross(a, b, c)) / base <= tol


def clean_ring(points, tol: float = COLINEAR_TOLERANCE) -> list:
    """Open vertex list with duplicate, spike and colinear vertices removed."""
    pts = [ProjectedPoint(float(p[0]), float(p[1])) for p in points]
    if len(pts) > 1 and _dist(pts[0], pts[-1]) <= tol:
        pts.pop()
    changed = True
    while changed and len(pts) >= 3:
        changed = False
        n = len(pts)
        for i in range(n):
            if _redundant(pts[i - 1], pts[i], pts[(i + 1) % n], tol):
                del pts[i]
                changed = True
                break
    return pts


def _in_triangle(p, a, b, c) -> bool:
    """Point in triangle, edges included, either orientation."""
    d1 = _cross(a, b, p)
    d2 = _cross(b, c, p)
    d3 = _cross(c, a, p)
    has_neg = d1 < -_AREA_EPS or d2 < -_AREA_EPS or d3 < -_AREA_EPS
    has_pos = d1 > _AREA_EPS or d2 > _AREA_EPS or d3 > _AREA_EPS
    return not (has_neg and has_pos)


# ── Hole bridging ────────────────────────────────────────────────────────

def _locally_inside(polygon, pos, p, verts) -> bool:
    """True when *p* lies in the interior wedge at contour position *pos*.

    After a bridge the same vertex appears twice in the contour, each copy
    owning one side of the bridge; only one of them sees a given point.
    """
    n = len(polygon)
    prev = verts[polygon[pos - 1]]
    a = verts[polygon[pos]]
    nxt = verts[polygon[(pos + 1) % n]]
    if _cross(prev, a, nxt) >= 0:
        return _cross(a, nxt, p) >= 0 and _cross(prev, a, p) >= 0
    return _cross(prev, a, p) > 0 or _cross(a, nxt, p) > 0


def _find_bridge(polygon, m, verts) -> int:
    """Position in *polygon* of the vertex that hole vertex *m* connects to."""
    hole_pt = verts[m]
    n = len(polygon)
    best_x = math.inf
    best_pos = None

    # Cast a ray towards +x and find the nearest edge it leaves the interior
    # through.  The contour is CCW, so those edges run upwards; horizontal
    # and zero-length edges never qualify.
    for pos in range(n):
        a = verts[polygon[pos]]
        b = verts[polygon[(pos + 1) % n]]
        if not (a.y <= hole_pt.y <= b.y) or a.y == b.y:
            continue
        t = (hole_pt.y - a.y) / (b.y - a.y)
        ix = a.x + t * (b.x - a.x)
        if ix < hole_pt.x or ix >= best_x:
            continue
        best_x = ix
        best_pos = pos if a.x > b.x else (pos + 1) % n
        if ix == hole_pt.x:
            return best_pos  # hole touches the edge

    if best_pos is None:
        # Hole not enclosed by the contour; connect to the nearest vertex
        return min(range(n), key=lambda p: _dist(verts[polygon[p]], hole_pt))

    # Any contour vertex inside (hole_pt, hit, candidate) may block the
    # view; take the visible one closest in angle to the ray.  This also
    # picks the right copy of a vertex that an earlier bridge duplicated.
    candidate = verts[polygon[best_pos]]
    hit = (best_x, hole_pt.y)
    # Ray straight through a vertex: only its copies are candidates
    through_vertex = candidate == hit
    chosen = best_pos
    best_tan = math.inf
    for pos in range(n):
        p = verts[polygon[pos]]
        if not (hole_pt.x < p.x <= candidate.x):
            continue
        if through_vertex:
            if p != candidate:
                continue
        elif not _in_triangle(p, hole_pt, hit, candidate):
            continue
        if not _locally_inside(polygon, pos, hole_pt, verts):
            continue
        tan = abs(hole_pt.y - p.y) / (p.x - hole_pt.x)
        if tan < best_tan or (tan == best_tan and p.x < verts[polygon[chosen]].x):
            chosen = pos
            best_tan = tan
    return chosen


def _bridge_hole(polygon, hole, verts) -> list:
    m_local = max(range(len(hole)), key=lambda i: verts[hole[i]].x)
    m = hole[m_local]
    pos = _find_bridge(polygon, m, verts)
    rotated = hole[m_local:] + hole[:m_local]
    return polygon[:pos + 1] + rotated + [m, polygon[pos]] + polygon[pos + 1:]


# ── Ear clipping ─────────────────────────────────────────────────────────

def _is_ear(poly, i, verts) -> bool:
    n = len(poly)
    a, b, c = verts[poly[i - 1]], verts[poly[i]], verts[poly[(i + 1) % n]]
    if _cross(a, b, c) <= _AREA_EPS:
        return False
    corners = (a, b, c)
    for j, idx in enumerate(poly):
        if j in ((i - 1) % n, i, (i + 1) % n):
            continue
        p = verts[idx]
        if p in corners:
            continue  # bridge duplicate
        if not _in_triangle(p, a, b, c):
            continue
        # Only reflex or flat vertices can cut into an ear
        if _cross(verts[poly[j - 1]], p, verts[poly[(j + 1) % n]]) > _AREA_EPS:
            continue
        return False
    return True


def _clip(polygon, verts) -> list:
    poly = list(polygon)
    triangles = []
    i = 0
    stall = 0

    while len(poly) > 3:
        n = len(poly)
        i %= n
        a, b, c = poly[i - 1], poly[i], poly[(i + 1) % n]
        area = _cross(verts[a], verts[b], verts[c])
        if abs(area) <= _AREA_EPS:
            # Zero-area corner: drop the vertex, emit nothing
            del poly[i]
            stall = 0
            continue
        if _is_ear(poly, i, verts):
            triangles.append((a, b, c))
            del poly[i]
            stall = 0
            continue
        i += 1
        stall += 1
        if stall < n:
            continue

        # No valid ear in a full pass (self-intersecting input): clip the
        # most convex corner, or drop the flattest one if none is convex.
        areas = [_cross(verts[poly[k - 1]], verts[poly[k]], verts[poly[(k + 1) % n]])
                 for k in range(n)]
        k = max(range(n), key=lambda j: areas[j])
        if areas[k] > _AREA_EPS:
            triangles.append((poly[k - 1], poly[k], poly[(k + 1) % n]))
        else:
            k = min(range(n), key=lambda j: abs(areas[j]))
        logger.debug(f"No ear among {n} vertices, forcing corner {poly[k]}")
        del poly[k]
        i = k
        stall = 0

    if len(poly) == 3 and _cross(verts[poly[0]], verts[poly[1]], verts[poly[2]]) > _AREA_EPS:
        triangles.append(tuple(poly))
    return triangles


def triangulate(outer, holes=(), tol: float = COLINEAR_TOLERANCE) -> Triangulation:
    """Triangulate *outer* (any orientation) with optional *holes*.

    Degenerate input (fewer than three distinct vertices, or no area)
    yields an empty Triangulation rather than an error.  Raises
    TriangulationError only when a real polygon produced no triangles.
    """
    outer_pts = clean_ring(outer, tol)
    if len(outer_pts) < 3 or abs(signed_area(outer_pts)) <= _AREA_EPS:
        return Triangulation()
    if signed_area(outer_pts) < 0:
        outer_pts.reverse()

    verts = list(outer_pts)
    rings = [list(range(len(outer_pts)))]
    for hole in holes:
        hole_pts = clean_ring(hole, tol)
        if len(hole_pts) < 3 or abs(signed_area(hole_pts)) <= _AREA_EPS:
            logger.debug("Skipping degenerate hole")
            continue
        if signed_area(hole_pts) > 0:
            hole_pts.reverse()
        start = len(verts)
        verts.extend(hole_pts)
        rings.append(list(range(start, len(verts))))

    polygon = list(rings[0])
    for ring in sorted(rings[1:], key=lambda r: max(verts[i].x for i in r),
                       reverse=True):
        polygon = _bridge_hole(polygon, ring, verts)

    triangles = _clip(polygon, verts)
    if not triangles:
        raise TriangulationError(f"no triangles from {len(verts)} vertices")
    return Triangulation(verts, triangles, rings)
