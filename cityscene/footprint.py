"""Footprint building: ways and multipolygon relations to closed rings.

OSM multipolygon member ways come unordered and with inconsistent
orientation.  Member ways are grouped by role and chained endpoint to
endpoint (either direction) until each loop closes.  A chain that cannot
close is dropped, never force-closed.
"""

import logging
import math
from collections import Counter
from dataclasses import replace
from enum import Enum

from shapely.geometry import Point, Polygon
from shapely.prepared import prep

from .models import (
    AreaFeature, Category, Dataset, LineFeature, ProjectedPoint, Relation,
    Ring, Way, signed_area,
)
from .projection import Projector

logger = logging.getLogger(__name__)


class FeatureError(Exception):
    """A single feature cannot be built; the load continues without it."""

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason


class Role(Enum):
    OUTER = "outer"
    INNER = "inner"
    UNKNOWN = "unknown"

    @classmethod
    def from_tag(cls, role: str | None) -> "Role":
        value = (role or "").strip().lower()
        if value == "outer":
            return cls.OUTER
        if value == "inner":
            return cls.INNER
        return cls.UNKNOWN


def _close(a, b, eps: float) -> bool:
    return math.hypot(a[0] - b[0], a[1] - b[1]) <= eps


def _dedupe(points, eps: float) -> list:
    cleaned = []
    for p in points:
        if cleaned and _close(cleaned[-1], p, eps):
            continue
        cleaned.append(ProjectedPoint(float(p[0]), float(p[1])))
    return cleaned


def repair_ring(points, eps: float) -> Ring:
    """Remove repeated vertices and close the ring.

    Raises FeatureError("degenerate_polygon") when fewer than three
    distinct vertices (or no area) remain.
    """
    cleaned = _dedupe(points, eps)
    while len(cleaned) > 1 and _close(cleaned[0], cleaned[-1], eps):
        cleaned.pop()
    if len(cleaned) < 3:
        raise FeatureError("degenerate_polygon",
                           f"ring has {len(cleaned)} distinct vertices")
    if abs(signed_area(cleaned)) <= eps * eps:
        raise FeatureError("degenerate_polygon", "ring has no area")
    return Ring(cleaned + [cleaned[0]])


def _corner_area(points, i: int) -> float:
    a, b, c = points[i - 1], points[i], points[(i + 1) % len(points)]
    return abs((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])) / 2.0


def simplify_ring(points, threshold: float) -> list:
    """Visvalingam-Whyatt simplification of an open vertex list.

    Repeatedly drops the vertex whose triangle with its two neighbours has
    the smallest area, as long as that area is at most *threshold* (square
    metres).  At least three vertices are always kept.
    """
    points = list(points)
    if threshold <= 0 or len(points) <= 3:
        return points

    areas = [_corner_area(points, i) for i in range(len(points))]
    while len(points) > 3:
        i = min(range(len(areas)), key=areas.__getitem__)
        if areas[i] > threshold:
            break
        del points[i]
        del areas[i]
        n = len(points)
        # Only the two new neighbours change their triangle
        areas[(i - 1) % n] = _corner_area(points, (i - 1) % n)
        areas[i % n] = _corner_area(points, i % n)
    return points


def simplify_feature(feature: AreaFeature, threshold: float) -> AreaFeature:
    """Copy of *feature* with its outer ring and holes simplified."""
    if threshold <= 0:
        return feature

    def _simplify(ring: Ring) -> Ring:
        kept = simplify_ring(ring.vertices, threshold)
        return Ring(kept + [kept[0]])

    simplified = replace(feature, outer=_simplify(feature.outer),
                         holes=[_simplify(h) for h in feature.holes])
    removed = (len(feature.outer.points) - len(simplified.outer.points)
               + sum(len(a.points) - len(b.points)
                     for a, b in zip(feature.holes, simplified.holes)))
    if removed:
        logger.debug(f"Simplified {feature.source}: dropped {removed} vertices")
    return simplified


def resolve_points(node_ids, dataset: Dataset, projector: Projector) -> list:
    missing = [nid for nid in node_ids if nid not in dataset.nodes]
    if missing:
        raise FeatureError("unresolved_reference",
                           f"{len(missing)} node(s) missing, e.g. {missing[0]}")
    nodes = dataset.nodes
    return [projector.project(nodes[nid].lat, nodes[nid].lon) for nid in node_ids]


def ring_from_way(way: Way, dataset: Dataset, projector: Projector,
                  eps: float) -> Ring:
    if not way.node_ids:
        raise FeatureError("degenerate_polygon", "way has no nodes")
    points = resolve_points(way.node_ids, dataset, projector)
    if way.node_ids[0] != way.node_ids[-1] and not _close(points[0], points[-1], eps):
        raise FeatureError("unclosed_ring",
                           f"way {way.id} ends away from its start")
    return repair_ring(points, eps)


def line_from_way(way: Way, category: Category, attributes: dict,
                  dataset: Dataset, projector: Projector,
                  eps: float) -> LineFeature:
    points = _dedupe(resolve_points(way.node_ids, dataset, projector), eps)
    if len(points) < 2:
        raise FeatureError("degenerate_polyline",
                           f"way {way.id} has fewer than two distinct points")
    return LineFeature(category, points, dict(attributes), ("way", way.id))


def way_feature(way: Way, category: Category, attributes: dict,
                dataset: Dataset, projector: Projector,
                eps: float) -> AreaFeature:
    ring = ring_from_way(way, dataset, projector, eps)
    return AreaFeature(category, ring.oriented(ccw=True), [],
                       dict(attributes), ("way", way.id))


# ── Relation chaining ────────────────────────────────────────────────────

def _find_next(remaining: list, tail, eps: float):
    """Index of a segment touching *tail*, and whether it must be reversed."""
    for i, seg in enumerate(remaining):
        if _close(seg[0], tail, eps):
            return i, False
        if _close(seg[-1], tail, eps):
            return i, True
    return None


def chain_segments(segments, eps: float) -> tuple[list, int]:
    """Chain open or closed point sequences into closed loops.

    Returns ``(loops, failures)``.  Each loop is a point list whose last
    point coincides with its first; *failures* counts chains that ran out
    of connecting segments before closing.
    """
    remaining = [list(s) for s in segments if len(s) >= 2]
    loops = []
    failures = 0

    while remaining:
        chain = remaining.pop(0)
        closed = len(chain) > 2 and _close(chain[0], chain[-1], eps)
        while not closed:
            found = _find_next(remaining, chain[-1], eps)
            if found is None:
                break
            i, needs_reverse = found
            seg = remaining.pop(i)
            if needs_reverse:
                seg = seg[::-1]
            chain.extend(seg[1:])
            closed = len(chain) > 2 and _close(chain[0], chain[-1], eps)

        if closed:
            loops.append(chain)
        else:
            failures += 1
            logger.warning(f"Ring chain of {len(chain)} points did not close "
                           f"(gap {math.hypot(chain[0][0] - chain[-1][0], chain[0][1] - chain[-1][1]):.2f} m), "
                           f"dropping it")
    return loops, failures


def _contains(outer: Ring, inner: Ring, eps: float) -> bool:
    region = prep(Polygon(outer.vertices).buffer(eps))
    return all(region.contains(Point(p)) for p in inner.vertices)


def build_relation_features(relation: Relation, category: Category,
                            attributes: dict, dataset: Dataset,
                            projector: Projector,
                            eps: float) -> tuple[list, Counter]:
    """Build one AreaFeature per outer ring of a multipolygon relation.

    Returns ``(features, dropped)`` where *dropped* counts rings lost along
    the way by reason.  Raises FeatureError when no outer ring survives.
    """
    if relation.tags.get('type') != 'multipolygon':
        raise FeatureError("unsupported_relation",
                           f"relation {relation.id} has type "
                           f"{relation.tags.get('type')!r}")

    groups = {role: [] for role in Role}
    dropped = Counter()

    for member in relation.members:
        if member.type != 'way':
            if member.type == 'relation' and member.ref == relation.id:
                logger.warning(f"Relation {relation.id} references itself, ignoring member")
            else:
                logger.debug(f"Relation {relation.id}: ignoring {member.type} member {member.ref}")
            continue
        way = dataset.ways.get(member.ref)
        if way is None:
            logger.warning(f"Relation {relation.id}: member way {member.ref} not in dataset")
            dropped['unresolved_reference'] += 1
            continue
        try:
            points = resolve_points(way.node_ids, dataset, projector)
        except FeatureError as e:
            logger.warning(f"Relation {relation.id}: member way {way.id}: {e}")
            dropped[e.reason] += 1
            continue
        groups[Role.from_tag(member.role)].append(points)

    rings = {role: [] for role in Role}
    for role, segments in groups.items():
        loops, failures = chain_segments(segments, eps)
        if failures:
            dropped['unclosed_ring'] += failures
        for loop in loops:
            try:
                rings[role].append(repair_ring(loop, eps))
            except FeatureError as e:
                dropped[e.reason] += 1

    outers = list(rings[Role.OUTER])
    inners = list(rings[Role.INNER])
    # Role-less rings are holes when they sit inside a declared outer
    for ring in rings[Role.UNKNOWN]:
        if any(_contains(o, ring, eps) for o in rings[Role.OUTER]):
            inners.append(ring)
        else:
            outers.append(ring)

    if not outers:
        reason = next(iter(dropped), "no_outer_ring")
        raise FeatureError(reason, f"relation {relation.id} has no closed outer ring")

    # Attach each hole to the smallest outer that contains it
    by_size = sorted(range(len(outers)), key=lambda i: abs(outers[i].area))
    holes_of = {i: [] for i in range(len(outers))}
    for inner in inners:
        for i in by_size:
            if _contains(outers[i], inner, eps):
                holes_of[i].append(inner.oriented(ccw=False))
                break
        else:
            logger.warning(f"Relation {relation.id}: inner ring lies outside every outer, dropping it")
            dropped['orphan_hole'] += 1

    features = [
        AreaFeature(category, outer.oriented(ccw=True), holes_of[i],
                    dict(attributes), ("relation", relation.id))
        for i, outer in enumerate(outers)
    ]
    if dropped:
        logger.info(f"Relation {relation.id}: {len(features)} feature(s), "
                    f"dropped {dict(dropped)}")
    return features, dropped
