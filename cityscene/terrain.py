"""Decorative terrain backdrop from seeded fractal value noise.

The heightfield is aesthetic filler: a regular grid over the scene extent
whose heights come from a deterministic noise function, so the same query
always produces the same landscape.
"""

import hashlib
import logging
import math

import numpy as np

from .config import PipelineConfig
from .models import BoundingBox, Mesh

logger = logging.getLogger(__name__)

# Terrain peaks stay this far below z = 0 so flat features never clip
TERRAIN_CLEARANCE = 0.05


def query_seed(identity: str) -> int:
    """Stable 64-bit seed from a query identity string."""
    digest = hashlib.sha256(identity.encode('utf-8')).digest()
    return int.from_bytes(digest[:8], 'little')


def _smoothstep(t):
    return t * t * (3.0 - 2.0 * t)


def value_noise(xs: np.ndarray, ys: np.ndarray, seed: int,
                feature_size: float, octaves: int) -> np.ndarray:
    """Fractal value noise in [0, 1] on the grid ``ys x xs``.

    Coordinates are taken relative to the first sample so results depend
    only on the grid shape, spacing and seed.
    """
    rng = np.random.default_rng(seed)
    gx, gy = np.meshgrid(xs - xs[0], ys - ys[0])
    total = np.zeros_like(gx)
    weight = 0.0

    for octave in range(max(1, octaves)):
        frequency = (2 ** octave) / feature_size
        amplitude = 0.5 ** octave
        u = gx * frequency
        v = gy * frequency
        lattice = rng.random((int(math.floor(v.max())) + 2,
                              int(math.floor(u.max())) + 2))

        i = np.floor(u).astype(np.int64)
        j = np.floor(v).astype(np.int64)
        su = _smoothstep(u - i)
        sv = _smoothstep(v - j)

        v00 = lattice[j, i]
        v10 = lattice[j, i + 1]
        v01 = lattice[j + 1, i]
        v11 = lattice[j + 1, i + 1]
        top = v00 + (v10 - v00) * su
        bottom = v01 + (v11 - v01) * su
        total += amplitude * (top + (bottom - top) * sv)
        weight += amplitude

    return total / weight


def synthesize_terrain(bounds: BoundingBox | None, seed: int,
                       config: PipelineConfig | None = None) -> Mesh:
    """Heightfield mesh spanning *bounds* plus the configured margin."""
    config = config or PipelineConfig()
    if bounds is None:
        return Mesh.empty()

    step = config.terrain_grid_step
    area = bounds.expanded(config.terrain_margin)
    cells_x = max(1, math.ceil(area.width / step))
    cells_y = max(1, math.ceil(area.height / step))
    xs = area.min_x + np.arange(cells_x + 1) * step
    ys = area.min_y + np.arange(cells_y + 1) * step

    noise = value_noise(xs, ys, seed, config.terrain_feature_size,
                        config.terrain_octaves)
    heights = config.terrain_amplitude * (noise - 1.0) - TERRAIN_CLEARANCE

    # ── Vertices, normals from the height gradient, UVs over the grid ────
    nx, ny = len(xs), len(ys)
    xx, yy = np.meshgrid(xs, ys)
    vertices = np.column_stack([xx.ravel(), yy.ravel(), heights.ravel()])

    dz_dy, dz_dx = np.gradient(heights, step, step)
    normals = np.column_stack([-dz_dx.ravel(), -dz_dy.ravel(),
                               np.ones(nx * ny)])
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)

    uu, vv = np.meshgrid(np.linspace(0.0, 1.0, nx), np.linspace(0.0, 1.0, ny))
    uvs = np.column_stack([uu.ravel(), vv.ravel()])

    # ── Faces: 2 triangles per cell, CCW seen from above ────────────────
    iy, ix = np.meshgrid(np.arange(ny - 1), np.arange(nx - 1), indexing='ij')
    iy = iy.ravel()
    ix = ix.ravel()
    v00 = iy * nx + ix
    v10 = iy * nx + ix + 1
    v01 = (iy + 1) * nx + ix
    v11 = (iy + 1) * nx + ix + 1
    faces = np.vstack([np.column_stack([v00, v10, v11]),
                       np.column_stack([v00, v11, v01])])

    logger.info(f"Terrain grid: {nx}x{ny} samples, {len(faces)} faces, "
                f"seed {seed}")
    return Mesh(vertices, normals, uvs, faces.astype(np.int64))
