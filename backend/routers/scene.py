import asyncio
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from cityscene.glb import scene_to_glb

from backend.jobs import load_manager, scene_result
from backend.models import SceneResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scene", tags=["scene"])


def _current_scene():
    scene = load_manager.scene
    if scene is None:
        raise HTTPException(status_code=404, detail="No scene loaded")
    return scene


@router.get("", response_model=SceneResponse)
async def get_scene():
    """Summary and statistics of the current scene."""
    scene = _current_scene()
    return SceneResponse(job_id=load_manager.scene_job_id, **scene_result(scene))


@router.get("/glb")
async def get_scene_glb():
    """The current scene as binary glTF."""
    scene = _current_scene()
    data = await asyncio.to_thread(scene_to_glb, scene)
    return Response(
        content=data,
        media_type="model/gltf-binary",
        headers={"Content-Disposition": 'attachment; filename="scene.glb"'},
    )
