"""SceneBuilder: runs one load from raw OSM JSON to an assembled scene."""

import hashlib
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from collections import Counter
from dataclasses import dataclass, field

from tqdm import tqdm

from . import osm_data
from .classify import classify, feature_attributes
from .config import PipelineConfig
from .footprint import (
    FeatureError, build_relation_features, line_from_way, simplify_feature,
    way_feature,
)
from .geometry import extrude, extrude_ribbon, ribbon_triangulation, surface
from .models import Category, Dataset, Relation, Way
from .projection import Projector
from .roads import build_road_graph
from .scene import Scene, SceneObject, SummaryLedger, assemble
from .terrain import query_seed, synthesize_terrain
from .triangulation import triangulate

logger = logging.getLogger(__name__)


@dataclass
class _Job:
    index: int
    element: object
    category: Category
    attributes: dict


@dataclass
class _Outcome:
    index: int
    objects: list = field(default_factory=list)
    road_line: object = None
    dropped: Counter = field(default_factory=Counter)
    reason: str | None = None  # set when the element is skipped


def raw_identity(raw) -> str:
    """Content hash of a raw response, used when no query identity is given."""
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
    elif isinstance(raw, str):
        data = raw.encode('utf-8')
    else:
        data = json.dumps(raw, sort_keys=True).encode('utf-8')
    return "sha256:" + hashlib.sha256(data).hexdigest()


class SceneBuilder:
    def __init__(self, config: PipelineConfig | None = None):
        self.config = config or PipelineConfig()

    def build(self, raw, identity: str | None = None,
              progress_callback=None) -> Scene:
        """Build a complete scene from a raw ``{"elements": [...]}`` document.

        Raises osm_data.ParseError before any feature work when the document
        is malformed.  Per-element problems never fail the build; they are
        counted in the scene's LoadSummary.
        """
        def _progress(pct, msg):
            if progress_callback:
                progress_callback(pct, msg)

        config = self.config
        identity = identity or raw_identity(raw)
        timings = {}

        t0 = time.perf_counter()
        _progress(5, "Parsing elements...")
        dataset = osm_data.parse(raw)
        timings['parse'] = time.perf_counter() - t0

        ledger = SummaryLedger()
        ledger.points = len(dataset.nodes)
        for rejected in dataset.rejected:
            ledger.reject(rejected.index, rejected.reason)

        t0 = time.perf_counter()
        _progress(15, "Projecting and classifying...")
        projector = Projector.from_dataset(dataset)
        bounds = projector.bounds(dataset)
        jobs = self._classify(dataset, ledger)
        timings['classify'] = time.perf_counter() - t0

        t0 = time.perf_counter()
        _progress(25, f"Building {len(jobs)} features...")
        outcomes = self._run_jobs(jobs, dataset, projector)
        timings['features'] = time.perf_counter() - t0

        objects = []
        road_lines = []
        for outcome in outcomes:
            if outcome.reason is not None:
                ledger.skip(outcome.index, outcome.reason)
                continue
            if outcome.road_line is not None:
                road_lines.append((outcome.index, outcome.road_line))
                continue
            ledger.triangulated(outcome.index)
            ledger.dropped_rings.update(outcome.dropped)
            objects.extend(outcome.objects)

        t0 = time.perf_counter()
        _progress(70, f"Building road graph from {len(road_lines)} ways...")
        road_graph = build_road_graph([line for _, line in road_lines],
                                      config.epsilon)
        road_objects, ways_with_edges = self._road_meshes(road_graph)
        for index, line in road_lines:
            if line.source[1] in ways_with_edges:
                ledger.triangulated(index)
            else:
                ledger.skip(index, 'degenerate_polyline')
        objects.extend(road_objects)
        timings['roads'] = time.perf_counter() - t0

        t0 = time.perf_counter()
        _progress(85, "Synthesizing terrain...")
        terrain = synthesize_terrain(bounds, query_seed(identity), config)
        timings['terrain'] = time.perf_counter() - t0

        summary = ledger.summary()
        scene = assemble(objects, summary, road_graph, terrain,
                         (projector.origin_lat, projector.origin_lon),
                         bounds, identity)
        _progress(100, "Scene ready")

        logger.info(f"Load summary: {summary.to_dict()}")
        logger.info("Build timings: " + ", ".join(
            f"{stage} {seconds:.2f}s" for stage, seconds in timings.items()))
        return scene

    # ── Classification ──────────────────────────────────────────────────

    def _classify(self, dataset: Dataset, ledger: SummaryLedger) -> list:
        members = dataset.member_way_ids()
        jobs = []
        elements = sorted(list(dataset.ways.values()) + list(dataset.relations.values()),
                          key=lambda e: e.index)
        for element in elements:
            category = classify(element.tags)
            ledger.parsed(element.index, category)
            if category == Category.other:
                if isinstance(element, Way) and element.id in members:
                    ledger.skip(element.index, 'relation_member')
                else:
                    ledger.skip(element.index, 'unclassified')
                continue
            attributes = feature_attributes(category, element.tags, self.config)
            jobs.append(_Job(element.index, element, category, attributes))
        logger.info(f"Classified {len(jobs)} of {len(elements)} ways/relations")
        return jobs

    # ── Per-feature geometry ────────────────────────────────────────────

    def _run_jobs(self, jobs, dataset: Dataset, projector: Projector) -> list:
        results = {}
        with ThreadPoolExecutor(max_workers=max(1, self.config.max_workers)) as pool:
            futures = {pool.submit(self._build_element, job, dataset, projector): job
                       for job in jobs}
            for future in tqdm(as_completed(futures), total=len(futures),
                               desc="Features", disable=not jobs):
                job = futures[future]
                results[job.index] = future.result()
        return [results[index] for index in sorted(results)]

    def _build_element(self, job: _Job, dataset: Dataset,
                       projector: Projector) -> _Outcome:
        """Geometry for one element; never raises."""
        element = job.element
        kind = 'relation' if isinstance(element, Relation) else 'way'
        try:
            if kind == 'way':
                return self._build_way(job, dataset, projector)
            return self._build_relation(job, dataset, projector)
        except FeatureError as e:
            logger.debug(f"Skipping {kind} {element.id}: {e.reason} ({e})")
            return _Outcome(job.index, reason=e.reason)
        except Exception:
            logger.exception(f"Unexpected error building {kind} {element.id}")
            return _Outcome(job.index, reason='geometry_error')

    def _build_way(self, job: _Job, dataset: Dataset,
                   projector: Projector) -> _Outcome:
        way = job.element
        eps = self.config.epsilon

        if job.category == Category.road:
            line = line_from_way(way, job.category, job.attributes, dataset,
                                 projector, eps)
            return _Outcome(job.index, road_line=line)

        if (job.category == Category.water and 'waterway' in way.tags
                and not way.is_closed):
            line = line_from_way(way, job.category, job.attributes, dataset,
                                 projector, eps)
            tri = ribbon_triangulation(line.points, job.attributes['width'])
            mesh = surface(tri, self.config.water_level, self.config.uv_tile)
            return _Outcome(job.index, [SceneObject('water', mesh, line.source,
                                                    dict(job.attributes))])

        feature = way_feature(way, job.category, job.attributes, dataset,
                              projector, eps)
        return _Outcome(job.index, [self._area_object(feature)])

    def _build_relation(self, job: _Job, dataset: Dataset,
                        projector: Projector) -> _Outcome:
        features, dropped = build_relation_features(
            job.element, job.category, job.attributes, dataset, projector,
            self.config.epsilon)

        objects = []
        first_error = None
        for feature in features:
            try:
                objects.append(self._area_object(feature))
            except FeatureError as e:
                dropped[e.reason] += 1
                first_error = first_error or e
        if not objects:
            raise first_error
        return _Outcome(job.index, objects, dropped=dropped)

    def _area_object(self, feature) -> SceneObject:
        config = self.config
        if feature.category in (Category.building, Category.water, Category.green):
            feature = simplify_feature(feature, config.simplify_area)
        tri = triangulate(feature.outer.points, [h.points for h in feature.holes])
        if tri.is_empty:
            raise FeatureError("degenerate_polygon",
                               f"{feature.source} has no area after cleanup")

        attrs = feature.attributes
        if feature.category == Category.building:
            mesh = extrude(tri, attrs['height'], attrs.get('min_height', 0.0),
                           config.uv_tile)
        elif feature.category == Category.water:
            mesh = surface(tri, config.water_level, config.uv_tile)
        elif feature.category == Category.green:
            mesh = surface(tri, config.green_level, config.uv_tile)
        else:
            mesh = surface(tri, config.road_thickness, config.uv_tile)
        return SceneObject(feature.category.value, mesh, feature.source,
                           dict(attrs))

    # ── Roads ────────────────────────────────────────────────────────────

    def _road_meshes(self, road_graph) -> tuple[list, set]:
        objects = []
        ways = set()
        for edge in road_graph.edges:
            mesh = extrude_ribbon(edge.polyline, edge.width,
                                  self.config.road_thickness,
                                  tile=self.config.uv_tile)
            if not mesh.triangle_count:
                continue
            ways.add(edge.way_id)
            objects.append(SceneObject(
                'road', mesh, ('way', edge.way_id),
                {'highway': edge.highway, 'width': edge.width,
                 'oneway': edge.oneway, 'nodes': (edge.u, edge.v)}))
        return objects, ways
