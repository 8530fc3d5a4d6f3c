import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from cityscene.builder import SceneBuilder
from cityscene.cache import ResponseCache
from cityscene.config import PipelineConfig
from cityscene.osm_data import ParseError
from cityscene.query import DataQuery, FetchError, fetch

from backend import config

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    queued = "queued"
    fetching = "fetching"
    building = "building"
    completed = "completed"
    failed = "failed"
    superseded = "superseded"


_FINISHED = (JobStatus.completed, JobStatus.failed, JobStatus.superseded)


@dataclass
class Job:
    id: str
    query: DataQuery
    generation: int
    status: JobStatus = JobStatus.queued
    progress: float = 0.0
    message: str = "Queued"
    result: Optional[dict] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def scene_result(scene) -> dict:
    """JSON-friendly description of a built scene."""
    graph = scene.road_graph
    stats = scene.stats()
    return {
        "identity": scene.identity,
        "origin": scene.origin,
        "bounds": asdict(scene.bounds) if scene.bounds is not None else None,
        "summary": scene.summary.to_dict(),
        "objects": stats["objects"],
        "vertices": stats["vertices"],
        "triangles": stats["triangles"],
        "road_nodes": graph.node_count if graph is not None else 0,
        "road_edges": graph.edge_count if graph is not None else 0,
        "intersections": len(graph.intersections()) if graph is not None else 0,
    }


class LoadManager:
    """Runs load jobs off the event loop; the newest request wins.

    Every job gets a generation number.  Fetch and build run in worker
    threads, and the build is only started once the fetch result is in.
    The finished scene is handed over in :meth:`_commit` under a lock,
    and only if no newer job was created in the meantime; otherwise the
    result is discarded and the job marked superseded.  Fetch and parse
    failures leave the current scene in place.
    """

    def __init__(self, cache: ResponseCache | None = None,
                 pipeline_config: PipelineConfig | None = None,
                 fetcher=fetch) -> None:
        self.jobs: dict[str, Job] = {}
        self.cache = cache or ResponseCache()
        self.pipeline_config = pipeline_config or PipelineConfig.from_env()
        self.scene = None
        self.scene_job_id: Optional[str] = None
        self._fetch = fetcher
        self._generation = 0
        self._lock = asyncio.Lock()
        self._tasks: set = set()

    def create_job(self, query: DataQuery) -> Job:
        self._generation += 1
        job = Job(id=str(uuid.uuid4()), query=query, generation=self._generation)
        self.jobs[job.id] = job
        self._prune()
        logger.info(f"Load job {job.id} ({query.identity[:80]}) is generation {job.generation}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def is_current(self, job: Job) -> bool:
        return job.generation == self._generation

    def start(self, job: Job) -> asyncio.Task:
        """Schedule :meth:`run_load` on the running loop."""
        task = asyncio.create_task(self.run_load(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_load(self, job: Job) -> None:
        """Fetch, then build, then hand the scene over; updates *job*."""
        def _update_progress(pct: float, msg: str) -> None:
            job.progress = pct
            job.message = msg

        try:
            job.status = JobStatus.fetching
            job.progress = 2.0
            job.message = "Fetching data..."
            raw = await asyncio.to_thread(self._fetch, job.query, cache=self.cache)

            if not self.is_current(job):
                self._supersede(job)
                return

            job.status = JobStatus.building
            builder = SceneBuilder(self.pipeline_config)
            scene = await asyncio.to_thread(
                builder.build, raw, job.query.identity,
                progress_callback=_update_progress)

            await self._commit(job, scene, raw)

        except (FetchError, ParseError) as exc:
            logger.warning(f"Load job {job.id} failed, keeping previous scene: {exc}")
            job.status = JobStatus.failed
            job.progress = 0.0
            job.message = f"Load failed: {exc}"

        except Exception as exc:
            logger.exception(f"Load failed for job {job.id}")
            job.status = JobStatus.failed
            job.progress = 0.0
            job.message = f"Load failed: {exc}"

    async def _commit(self, job: Job, scene, raw) -> None:
        async with self._lock:
            if not self.is_current(job):
                self._supersede(job)
                return
            self.scene = scene
            self.scene_job_id = job.id
            job.result = scene_result(scene)
            job.progress = 100.0
            job.message = "Scene ready"
            job.status = JobStatus.completed

        if job.query.kind.value != "replay":
            try:
                await asyncio.to_thread(self.cache.store, raw)
            except OSError as exc:
                logger.warning(f"Could not store last response: {exc}")

    def _supersede(self, job: Job) -> None:
        logger.info(f"Discarding result of job {job.id}: generation "
                    f"{job.generation} superseded by {self._generation}")
        job.status = JobStatus.superseded
        job.message = "Superseded by a newer request"

    def _prune(self) -> None:
        finished = [j for j in self.jobs.values() if j.status in _FINISHED]
        excess = len(finished) - config.MAX_FINISHED_JOBS
        for job in sorted(finished, key=lambda j: j.generation)[:max(0, excess)]:
            if job.id != self.scene_job_id:
                del self.jobs[job.id]


# Singleton instance used across the application
load_manager = LoadManager()
