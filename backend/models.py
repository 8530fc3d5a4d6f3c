from pydantic import BaseModel
from typing import Literal, Optional


class LoadRequest(BaseModel):
    kind: Literal["city", "file", "overpass", "replay"] = "city"
    query: str = ""


class JobResponse(BaseModel):
    job_id: str
    status: str
    progress: float
    message: str
    generation: int
    result: Optional[dict] = None


class SummaryModel(BaseModel):
    parsed: int
    classified: int
    triangulated: int
    skipped: int
    skip_reasons: dict[str, int] = {}
    dropped_rings: dict[str, int] = {}
    points: int = 0


class SceneResponse(BaseModel):
    job_id: Optional[str] = None
    identity: str
    origin: tuple[float, float]
    bounds: Optional[dict] = None
    summary: SummaryModel
    objects: dict[str, int]
    vertices: int
    triangles: int
    road_nodes: int
    road_edges: int
    intersections: int
