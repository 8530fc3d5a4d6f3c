import numpy as np
import pytest

from cityscene.config import PipelineConfig
from cityscene.models import BoundingBox
from cityscene.terrain import (
    TERRAIN_CLEARANCE, query_seed, synthesize_terrain, value_noise,
)

BOUNDS = BoundingBox(-100.0, -60.0, 100.0, 60.0)


def test_query_seed_is_stable_and_distinct():
    assert query_seed("city:Delft") == query_seed("city:Delft")
    assert query_seed("city:Delft") != query_seed("city:Leiden")
    assert 0 <= query_seed("") < 2 ** 64


def test_same_seed_same_heights():
    a = synthesize_terrain(BOUNDS, 42)
    b = synthesize_terrain(BOUNDS, 42)
    np.testing.assert_array_equal(a.vertices, b.vertices)
    np.testing.assert_array_equal(a.triangles, b.triangles)


def test_different_seed_different_heights():
    a = synthesize_terrain(BOUNDS, 1)
    b = synthesize_terrain(BOUNDS, 2)
    assert a.vertex_count == b.vertex_count
    assert not np.array_equal(a.vertices[:, 2], b.vertices[:, 2])


def test_grid_covers_bounds_plus_margin():
    config = PipelineConfig(terrain_grid_step=10.0, terrain_margin=20.0)
    mesh = synthesize_terrain(BOUNDS, 7, config)
    xs, ys = mesh.vertices[:, 0], mesh.vertices[:, 1]
    assert xs.min() == pytest.approx(-120.0)
    assert ys.min() == pytest.approx(-80.0)
    assert xs.max() >= 120.0
    assert ys.max() >= 80.0
    # 24 x 16 cells, 2 triangles each
    assert mesh.triangle_count == 24 * 16 * 2


def test_heights_are_low_and_below_ground():
    config = PipelineConfig(terrain_amplitude=2.0)
    z = synthesize_terrain(BOUNDS, 3, config).vertices[:, 2]
    assert z.max() <= -TERRAIN_CLEARANCE
    assert z.min() >= -2.0 - TERRAIN_CLEARANCE


def test_faces_point_up_and_normals_are_unit():
    mesh = synthesize_terrain(BOUNDS, 5)
    v = mesh.vertices
    t = mesh.triangles
    cross = np.cross(v[t[:, 1]] - v[t[:, 0]], v[t[:, 2]] - v[t[:, 0]])
    assert (cross[:, 2] > 0).all()
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0)
    assert (mesh.normals[:, 2] > 0).all()
    assert mesh.uvs.min() == 0.0 and mesh.uvs.max() == 1.0


def test_no_bounds_no_terrain():
    assert synthesize_terrain(None, 1).vertex_count == 0


def test_value_noise_range():
    xs = np.linspace(0, 500, 26)
    ys = np.linspace(0, 300, 16)
    noise = value_noise(xs, ys, 9, feature_size=100.0, octaves=4)
    assert noise.shape == (16, 26)
    assert noise.min() >= 0.0 and noise.max() <= 1.0
