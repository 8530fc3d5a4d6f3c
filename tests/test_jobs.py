import asyncio
import json
import threading

from cityscene.cache import ResponseCache
from cityscene.config import PipelineConfig
from cityscene.query import DataQuery, FetchError

from backend.jobs import JobStatus, LoadManager

from conftest import SQUARE_10, OsmDoc


def _square_json(x0=0.0):
    doc = OsmDoc()
    doc.polygon([(x + x0, y) for x, y in SQUARE_10], {"building": "yes"})
    return json.dumps(doc.to_dict())


def _manager(tmp_path, fetcher):
    return LoadManager(cache=ResponseCache(tmp_path / "last.json"),
                       pipeline_config=PipelineConfig(max_workers=1),
                       fetcher=fetcher)


def _load(manager, text="Delft"):
    job = manager.create_job(DataQuery.parse("city", text))
    asyncio.run(manager.run_load(job))
    return job


def test_successful_load_commits_scene_and_caches(tmp_path):
    raw = _square_json()
    manager = _manager(tmp_path, lambda query, cache=None: raw)
    job = _load(manager)

    assert job.status == JobStatus.completed
    assert job.progress == 100.0
    assert manager.scene_job_id == job.id
    assert manager.scene.identity == "city:Delft"
    assert job.result["summary"]["triangulated"] == 1
    assert job.result["objects"]["building"] == 1
    assert manager.cache.load() == raw


def test_fetch_failure_keeps_previous_scene(tmp_path):
    responses = [_square_json()]

    def fetcher(query, cache=None):
        if not responses:
            raise FetchError("Overpass responded 504 Gateway Timeout")
        return responses.pop()

    manager = _manager(tmp_path, fetcher)
    first = _load(manager)
    scene = manager.scene
    second = _load(manager, "Leiden")

    assert second.status == JobStatus.failed
    assert "504" in second.message
    assert manager.scene is scene
    assert manager.scene_job_id == first.id


def test_parse_failure_keeps_previous_scene_and_cache(tmp_path):
    responses = ["<osm/>", _square_json()]
    manager = _manager(tmp_path, lambda query, cache=None: responses.pop())
    first = _load(manager)
    cached = manager.cache.load()
    second = _load(manager, "Leiden")

    assert second.status == JobStatus.failed
    assert manager.scene_job_id == first.id
    assert manager.cache.load() == cached


def test_replay_does_not_rewrite_cache(tmp_path):
    calls = []

    def fetcher(query, cache=None):
        calls.append(query.kind.value)
        return cache.load()

    manager = _manager(tmp_path, fetcher)
    manager.cache.store(_square_json())
    job = manager.create_job(DataQuery.parse("replay"))
    mtime = manager.cache.path.stat().st_mtime_ns
    asyncio.run(manager.run_load(job))

    assert job.status == JobStatus.completed
    assert calls == ["replay"]
    assert manager.cache.path.stat().st_mtime_ns == mtime


def test_last_request_wins(tmp_path):
    release = threading.Event()
    slow_started = threading.Event()

    def fetcher(query, cache=None):
        if query.value == "Slow":
            slow_started.set()
            release.wait(timeout=10)
            return _square_json(x0=100.0)
        return _square_json()

    manager = _manager(tmp_path, fetcher)

    async def scenario():
        slow = manager.create_job(DataQuery.parse("city", "Slow"))
        slow_task = manager.start(slow)
        await asyncio.to_thread(slow_started.wait, 10)

        fast = manager.create_job(DataQuery.parse("city", "Fast"))
        await manager.run_load(fast)
        release.set()
        await slow_task
        return slow, fast

    slow, fast = asyncio.run(scenario())

    assert fast.status == JobStatus.completed
    assert slow.status == JobStatus.superseded
    assert manager.scene_job_id == fast.id
    assert manager.scene.identity == "city:Fast"


def test_finished_jobs_are_pruned(tmp_path, monkeypatch):
    from backend import config

    monkeypatch.setattr(config, "MAX_FINISHED_JOBS", 2)
    manager = _manager(tmp_path, lambda query, cache=None: _square_json())
    jobs = [_load(manager, f"City{i}") for i in range(4)]
    manager.create_job(DataQuery.parse("city", "Next"))

    assert manager.get_job(jobs[0].id) is None
    assert manager.get_job(jobs[-1].id) is not None
    assert len([j for j in manager.jobs.values() if j.status == JobStatus.completed]) == 2
