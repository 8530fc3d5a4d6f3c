"""Road network graph from road polylines.

Vertices of all road ways are clustered by position (KD-tree pairs within
epsilon, merged with union-find).  A cluster becomes a graph node when it is
a way endpoint or is used more than once, so ways sharing an intermediate
vertex are split there into separate edges.
"""

import logging
import math
from dataclasses import dataclass

import networkx as nx
import numpy as np
from scipy.spatial import cKDTree

from .models import ProjectedPoint

logger = logging.getLogger(__name__)


@dataclass
class RoadEdge:
    u: int
    v: int
    key: int
    width: float
    polyline: list
    highway: str
    way_id: int
    oneway: int = 0

    @property
    def length(self) -> float:
        return polyline_length(self.polyline)


def polyline_length(points) -> float:
    return sum(math.hypot(b[0] - a[0], b[1] - a[1])
               for a, b in zip(points, points[1:]))


class RoadGraph:
    """Road network as two views of the same edges.

    ``graph`` is an undirected multigraph for geometry and intersections;
    nodes carry ``point`` and edges their polyline, drawn from ``start`` to
    ``end``.  ``routes`` is a directed multigraph holding the travel
    directions each edge allows, used for routing.
    """

    def __init__(self):
        self.graph = nx.MultiGraph()
        self.routes = nx.MultiDiGraph()

    def add_node(self, node_id: int, point: ProjectedPoint):
        self.graph.add_node(node_id, point=point)
        self.routes.add_node(node_id)

    def add_edge(self, u: int, v: int, polyline: list, width: float,
                 highway: str, way_id: int, oneway: int = 0) -> int:
        """Add a road edge drawn from *u* to *v*.

        *oneway* is 1 when travel is only allowed from *u* to *v*, -1 when
        only from *v* to *u*, and 0 for both directions.
        """
        length = polyline_length(polyline)
        key = self.graph.add_edge(u, v, start=u, end=v, polyline=polyline,
                                  width=width, highway=highway, way_id=way_id,
                                  oneway=oneway, length=length)
        if oneway >= 0:
            self.routes.add_edge(u, v, length=length)
        if oneway <= 0:
            self.routes.add_edge(v, u, length=length)
        return key

    @property
    def nodes(self) -> dict:
        return {n: data['point'] for n, data in self.graph.nodes(data=True)}

    @property
    def edges(self) -> list:
        return [
            RoadEdge(d['start'], d['end'], k, d['width'], d['polyline'],
                     d['highway'], d['way_id'], d['oneway'])
            for _, _, k, d in self.graph.edges(keys=True, data=True)
        ]

    @property
    def node_count(self) -> int:
        return self.graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self.graph.number_of_edges()

    def intersections(self) -> list:
        """Nodes where three or more edge ends meet."""
        return [n for n, degree in self.graph.degree() if degree >= 3]

    def shortest_path(self, source: int, target: int) -> list | None:
        """Node ids of the shortest route by edge length, or None.

        One-way edges are only followed in their allowed direction.
        """
        points = self.nodes

        def heuristic(a, b):
            return math.dist(points[a], points[b])

        try:
            return nx.astar_path(self.routes, source, target,
                                 heuristic=heuristic, weight='length')
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None


# ── Construction ─────────────────────────────────────────────────────────

def _cluster(coords: np.ndarray, eps: float) -> np.ndarray:
    """Cluster label per coordinate; the label is the lowest member index."""
    parent = np.arange(len(coords))

    def find(i):
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    if len(coords) > 1:
        for a, b in sorted(cKDTree(coords).query_pairs(max(eps, 0.0))):
            ra, rb = find(a), find(b)
            if ra != rb:
                parent[max(ra, rb)] = min(ra, rb)
    return np.array([find(i) for i in range(len(coords))], dtype=np.int64)


def build_road_graph(lines, eps: float = 0.05) -> RoadGraph:
    """Build a :class:`RoadGraph` from road LineFeatures.

    Each way contributes one edge per consecutive pair of graph nodes along
    its polyline, keeping the full sub-polyline.  Zero-length pieces are
    skipped.
    """
    graph = RoadGraph()
    lines = [line for line in lines if len(line.points) >= 2]
    if not lines:
        return graph

    owners = []
    coords = []
    for li, line in enumerate(lines):
        for p in line.points:
            owners.append(li)
            coords.append((p[0], p[1]))
    coords = np.array(coords, dtype=np.float64)
    labels = _cluster(coords, eps)

    # Usage per cluster: total occurrences and distinct ways
    uses = {}
    ways_of = {}
    for i, label in enumerate(labels):
        uses[label] = uses.get(label, 0) + 1
        ways_of.setdefault(label, set()).add(owners[i])

    node_ids = {}

    def node_for(label):
        if label not in node_ids:
            node_ids[label] = len(node_ids)
            x, y = coords[label]
            graph.add_node(node_ids[label], ProjectedPoint(float(x), float(y)))
        return node_ids[label]

    skipped = 0
    offset = 0
    for line in lines:
        count = len(line.points)
        line_labels = labels[offset:offset + count]
        offset += count

        width = line.attributes.get('width', 0.0)
        highway = line.attributes.get('highway', '')
        oneway = line.attributes.get('oneway', 0)
        way_id = line.source[1]

        start = node_for(line_labels[0])
        piece = [graph.graph.nodes[start]['point']]
        previous = line_labels[0]
        for k in range(1, count):
            label = line_labels[k]
            if label == previous:
                continue
            previous = label
            is_node = (k == count - 1 or uses[label] > 1
                       or len(ways_of[label]) > 1)
            if not is_node:
                piece.append(ProjectedPoint(float(line.points[k][0]),
                                            float(line.points[k][1])))
                continue
            end = node_for(label)
            piece.append(graph.graph.nodes[end]['point'])
            if polyline_length(piece) > 0:
                graph.add_edge(start, end, piece, width, highway, way_id, oneway)
            else:
                skipped += 1
            start = end
            piece = [graph.graph.nodes[end]['point']]

        # Trailing vertices collapsed into the previous cluster
        if len(piece) > 1:
            end = node_for(previous)
            piece[-1] = graph.graph.nodes[end]['point']
            if polyline_length(piece) > 0:
                graph.add_edge(start, end, piece, width, highway, way_id, oneway)
            else:
                skipped += 1

    if skipped:
        logger.debug(f"Skipped {skipped} zero-length road pieces")
    logger.info(f"Road graph: {graph.node_count} nodes, {graph.edge_count} edges, "
                f"{len(graph.intersections())} intersections")
    return graph
