import logging

from fastapi import APIRouter, HTTPException

from cityscene.query import DataQuery, QueryError

from backend.jobs import Job, load_manager
from backend.models import JobResponse, LoadRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/load", tags=["load"])


def _job_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.id,
        status=job.status.value,
        progress=job.progress,
        message=job.message,
        generation=job.generation,
        result=job.result,
    )


@router.post("", response_model=JobResponse)
async def start_load(request: LoadRequest):
    """Start loading a scene by city name, file, Overpass QL or replay.

    The fetch and build run in the background; the caller receives a job
    ID immediately and can poll ``/status/{job_id}``.  A newer request
    supersedes any load still in flight.
    """
    try:
        query = DataQuery.parse(request.kind, request.query)
    except QueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    job = load_manager.create_job(query)
    load_manager.start(job)
    return _job_response(job)


@router.get("/status/{job_id}", response_model=JobResponse)
async def get_load_status(job_id: str):
    """Poll the status of a running or finished load job."""
    job = load_manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job)
