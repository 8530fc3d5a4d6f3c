import pytest

from cityscene.models import Category, LineFeature, ProjectedPoint as P
from cityscene.roads import build_road_graph


def _road(way_id, points, highway="residential", width=6.0, oneway=0):
    return LineFeature(Category.road, [P(*p) for p in points],
                       {"highway": highway, "width": width, "oneway": oneway},
                       ("way", way_id))


def test_shared_endpoint_is_one_node():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0)]),
        _road(2, [(10, 0), (10, 10)]),
    ])
    assert graph.node_count == 3
    assert graph.edge_count == 2
    shared = [n for n, p in graph.nodes.items() if p == (10, 0)]
    assert len(shared) == 1
    assert graph.graph.degree(shared[0]) == 2


def test_near_coincident_endpoints_collapse_within_epsilon():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0)]),
        _road(2, [(10.02, 0.01), (20, 0)]),
    ], eps=0.05)
    assert graph.node_count == 3
    # Both edges meet at the same node
    edges = graph.edges
    assert {edges[0].u, edges[0].v} & {edges[1].u, edges[1].v}


def test_far_endpoints_stay_separate():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0)]),
        _road(2, [(10.5, 0), (20, 0)]),
    ], eps=0.05)
    assert graph.node_count == 4


def test_way_is_split_at_shared_intermediate_vertex():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0), (20, 0)], highway="primary", width=12.0),
        _road(2, [(10, 0), (10, 10)]),
    ])
    assert graph.node_count == 4
    assert graph.edge_count == 3
    assert len(graph.intersections()) == 1
    primary = [e for e in graph.edges if e.way_id == 1]
    assert len(primary) == 2
    assert all(e.width == 12.0 and e.highway == "primary" for e in primary)


def test_curved_way_keeps_full_polyline():
    points = [(0, 0), (5, 2), (10, 3), (15, 2), (20, 0)]
    graph = build_road_graph([_road(1, points)])
    assert graph.node_count == 2
    [edge] = graph.edges
    assert edge.polyline == points
    assert edge.length > 20.0


def test_closed_way_becomes_self_loop():
    graph = build_road_graph([_road(1, [(0, 0), (10, 0), (10, 10), (0, 0)])])
    assert graph.node_count == 1
    [edge] = graph.edges
    assert edge.u == edge.v
    assert len(edge.polyline) == 4


def test_zero_length_pieces_are_skipped():
    graph = build_road_graph([_road(1, [(0, 0), (0.01, 0)])], eps=0.05)
    assert graph.edge_count == 0


def test_shortest_path():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0)]),
        _road(2, [(10, 0), (10, 10)]),
        _road(3, [(0, 0), (0, 30), (10, 10)]),
    ])
    ids = {p: n for n, p in graph.nodes.items()}
    path = graph.shortest_path(ids[(0, 0)], ids[(10, 10)])
    assert path == [ids[(0, 0)], ids[(10, 0)], ids[(10, 10)]]
    assert graph.shortest_path(ids[(0, 0)], 12345) is None


def test_oneway_edge_is_not_routed_backwards():
    graph = build_road_graph([_road(1, [(0, 0), (10, 0)], oneway=1)])
    ids = {p: n for n, p in graph.nodes.items()}
    a, b = ids[(0, 0)], ids[(10, 0)]
    assert graph.shortest_path(a, b) == [a, b]
    assert graph.shortest_path(b, a) is None
    # Geometry and intersections still see a plain undirected edge
    [edge] = graph.edges
    assert (edge.u, edge.v, edge.oneway) == (a, b, 1)
    assert graph.graph.has_edge(b, a)


def test_reverse_oneway_runs_against_the_polyline():
    graph = build_road_graph([_road(1, [(0, 0), (10, 0)], oneway=-1)])
    ids = {p: n for n, p in graph.nodes.items()}
    a, b = ids[(0, 0)], ids[(10, 0)]
    assert graph.shortest_path(a, b) is None
    assert graph.shortest_path(b, a) == [b, a]


def test_oneway_detour_takes_the_two_way_road():
    graph = build_road_graph([
        _road(1, [(0, 0), (10, 0)], oneway=1),
        _road(2, [(10, 0), (10, 10), (0, 10), (0, 0)]),
    ])
    ids = {p: n for n, p in graph.nodes.items()}
    a, b = ids[(0, 0)], ids[(10, 0)]
    assert graph.shortest_path(a, b) == [a, b]
    # Back from b the direct edge is closed, so the loop road is used
    assert graph.shortest_path(b, a) == [b, a]
    assert graph.routes.number_of_edges() == 3


def test_edge_endpoints_follow_polyline_direction():
    graph = build_road_graph([
        _road(1, [(10, 0), (0, 0)]),
        _road(2, [(20, 0), (10, 0)]),
    ])
    for edge in graph.edges:
        assert graph.nodes[edge.u] == edge.polyline[0]
        assert graph.nodes[edge.v] == edge.polyline[-1]


def test_empty_input():
    graph = build_road_graph([])
    assert graph.node_count == 0
    assert graph.edges == []


def test_node_ids_are_deterministic():
    lines = [_road(1, [(0, 0), (10, 0)]), _road(2, [(10, 0), (10, 10)])]
    a = build_road_graph(lines)
    b = build_road_graph(lines)
    assert a.nodes == b.nodes
    assert [(e.u, e.v) for e in a.edges] == [(e.u, e.v) for e in b.edges]


@pytest.mark.parametrize("eps", [0.0, 0.05])
def test_exactly_coincident_vertices_always_merge(eps):
    graph = build_road_graph([
        _road(1, [(0, 0), (5, 5)]),
        _road(2, [(5, 5), (9, 9)]),
    ], eps=eps)
    assert graph.node_count == 3
