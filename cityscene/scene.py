"""Scene assembly and load accounting."""

import logging
from collections import Counter
from dataclasses import dataclass, field

from .models import BoundingBox, Category, Mesh

logger = logging.getLogger(__name__)

SCENE_KINDS = ('building', 'road', 'water', 'green', 'terrain')


@dataclass
class LoadSummary:
    parsed: int = 0
    classified: int = 0
    triangulated: int = 0
    skipped: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    # Rings lost inside relations that still produced geometry
    dropped_rings: Counter = field(default_factory=Counter)
    points: int = 0

    def to_dict(self) -> dict:
        return {
            'parsed': self.parsed,
            'classified': self.classified,
            'triangulated': self.triangulated,
            'skipped': self.skipped,
            'skip_reasons': dict(self.skip_reasons),
            'dropped_rings': dict(self.dropped_rings),
            'points': self.points,
        }


class SummaryLedger:
    """One outcome per input element, keyed by its position in the input.

    Elements rejected at ingestion are skipped without being parsed; every
    parsed element must end up either triangulated or skipped.  Recording a
    second outcome for the same element is a bug and raises ValueError.
    """

    def __init__(self):
        self._parsed = set()
        self._outcomes = {}
        self.classified = 0
        self.points = 0
        self.dropped_rings = Counter()

    def _record(self, index: int, outcome: tuple):
        if index in self._outcomes:
            raise ValueError(f"Element {index} already recorded as "
                             f"{self._outcomes[index]}")
        self._outcomes[index] = outcome

    def reject(self, index: int, reason: str):
        self._record(index, ('skipped', reason))

    def parsed(self, index: int, category: Category):
        if index in self._parsed:
            raise ValueError(f"Element {index} parsed twice")
        self._parsed.add(index)
        if category != Category.other:
            self.classified += 1

    def triangulated(self, index: int):
        self._record(index, ('triangulated', None))

    def skip(self, index: int, reason: str):
        self._record(index, ('skipped', reason))

    def outcome(self, index: int) -> tuple | None:
        return self._outcomes.get(index)

    def summary(self) -> LoadSummary:
        pending = self._parsed - self._outcomes.keys()
        if pending:
            raise ValueError(f"{len(pending)} parsed element(s) have no outcome, "
                             f"e.g. {min(pending)}")
        reasons = Counter(reason for status, reason in self._outcomes.values()
                          if status == 'skipped')
        return LoadSummary(
            parsed=len(self._parsed),
            classified=self.classified,
            triangulated=sum(1 for status, _ in self._outcomes.values()
                             if status == 'triangulated'),
            skipped=sum(reasons.values()),
            skip_reasons=reasons,
            dropped_rings=Counter(self.dropped_rings),
            points=self.points,
        )


@dataclass
class SceneObject:
    """Engine-agnostic renderable: one mesh plus where it came from."""
    kind: str
    mesh: Mesh
    source: tuple | None = None
    attributes: dict = field(default_factory=dict)


@dataclass
class Scene:
    objects: list
    summary: LoadSummary
    road_graph: object = None
    origin: tuple = (0.0, 0.0)
    bounds: BoundingBox | None = None
    identity: str = ""

    def by_kind(self, kind: str) -> list:
        return [o for o in self.objects if o.kind == kind]

    def merged_mesh(self, kind: str) -> Mesh:
        return Mesh.merge([o.mesh for o in self.by_kind(kind)])

    def stats(self) -> dict:
        counts = Counter(o.kind for o in self.objects)
        return {
            'objects': {kind: counts.get(kind, 0) for kind in SCENE_KINDS},
            'vertices': sum(o.mesh.vertex_count for o in self.objects),
            'triangles': sum(o.mesh.triangle_count for o in self.objects),
        }


def assemble(objects, summary: LoadSummary, road_graph=None,
             terrain: Mesh | None = None, origin=(0.0, 0.0),
             bounds: BoundingBox | None = None, identity: str = "") -> Scene:
    """Collect the load's meshes and summary into a :class:`Scene`."""
    kept = [o for o in objects if o.mesh.triangle_count]
    if len(kept) != len(objects):
        logger.debug(f"Dropped {len(objects) - len(kept)} empty meshes")
    if terrain is not None and terrain.triangle_count:
        kept.append(SceneObject('terrain', terrain))

    scene = Scene(kept, summary, road_graph, origin, bounds, identity)
    stats = scene.stats()
    logger.info(f"Scene assembled: {stats['objects']}, "
                f"{stats['vertices']} vertices, {stats['triangles']} triangles")
    return scene
