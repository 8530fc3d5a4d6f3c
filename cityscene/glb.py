"""Rendering boundary: scene meshes to a binary glTF (GLB) via trimesh.

One mesh per scene object kind, each with a solid PBR colour.  Scene
coordinates are z-up metres; glTF is y-up, so (x, y, z) maps to
(x, z, -y), a rotation that keeps triangle winding.
"""

import logging
import pathlib
import time

import numpy as np
import trimesh
from trimesh.visual.material import PBRMaterial

from .constants import KIND_COLORS, OUTPUT_DIR
from .scene import SCENE_KINDS, Scene

logger = logging.getLogger(__name__)


def _to_y_up(points: np.ndarray) -> np.ndarray:
    return np.column_stack([points[:, 0], points[:, 2], -points[:, 1]])


def scene_to_trimesh(scene: Scene) -> trimesh.Scene:
    glb_scene = trimesh.Scene()
    for kind in SCENE_KINDS:
        merged = scene.merged_mesh(kind)
        if not merged.triangle_count:
            continue
        mesh = trimesh.Trimesh(
            vertices=_to_y_up(merged.vertices),
            faces=merged.triangles,
            vertex_normals=_to_y_up(merged.normals),
            process=False,
        )
        material = PBRMaterial(
            baseColorFactor=KIND_COLORS.get(kind, [0.8, 0.8, 0.8, 1.0]),
            doubleSided=kind in ('water', 'green'),
        )
        mesh.visual = trimesh.visual.TextureVisuals(uv=merged.uvs,
                                                    material=material)
        glb_scene.add_geometry(mesh, geom_name=kind)
        logger.debug(f"GLB layer {kind}: {merged.vertex_count} verts, "
                     f"{merged.triangle_count} faces")
    return glb_scene


def scene_to_glb(scene: Scene) -> bytes:
    return scene_to_trimesh(scene).export(file_type='glb')


def export_glb(scene: Scene, output_path: str | pathlib.Path) -> str:
    """Write *scene* as GLB.  Relative names land in the output directory.

    Returns the absolute path of the written file.
    """
    output_path = pathlib.Path(output_path)
    if not output_path.is_absolute() and output_path.parent == pathlib.Path('.'):
        output_path = OUTPUT_DIR / output_path
    output_path.parent.mkdir(parents=True, exist_ok=True)

    t0 = time.perf_counter()
    data = scene_to_glb(scene)
    output_path.write_bytes(data)
    size_mb = len(data) / 1024 / 1024
    logger.info(f"GLB file generated successfully: {output_path} "
                f"({size_mb:.1f} MB in {time.perf_counter() - t0:.1f}s)")
    return str(output_path.resolve())
