"""Geographic to local planar coordinates (equirectangular)."""

import math
import logging

import numpy as np

from .constants import EARTH_RADIUS
from .models import BoundingBox, Dataset, ProjectedPoint

logger = logging.getLogger(__name__)


class Projector:
    """Project lat/lon onto a plane tangent at the dataset's origin.

    x = (lon - lon0) * cos(lat0) * R
    y = (lat - lat0) * R

    Adequate at city scale; no inverse is needed.
    """

    def __init__(self, origin_lat: float = 0.0, origin_lon: float = 0.0,
                 radius: float = EARTH_RADIUS):
        self.origin_lat = origin_lat
        self.origin_lon = origin_lon
        self.radius = radius
        self._cos_lat0 = math.cos(math.radians(origin_lat))

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> "Projector":
        """Origin = centre of the bounding box of every node coordinate."""
        if not dataset.nodes:
            logger.warning("Dataset has no nodes; projecting around (0, 0)")
            return cls()
        lats = [n.lat for n in dataset.nodes.values()]
        lons = [n.lon for n in dataset.nodes.values()]
        origin_lat = (min(lats) + max(lats)) / 2
        origin_lon = (min(lons) + max(lons)) / 2
        logger.info(f"Projection origin: lat={origin_lat:.6f}, lon={origin_lon:.6f}")
        return cls(origin_lat, origin_lon)

    def project(self, lat: float, lon: float) -> ProjectedPoint:
        x = math.radians(lon - self.origin_lon) * self._cos_lat0 * self.radius
        y = math.radians(lat - self.origin_lat) * self.radius
        return ProjectedPoint(x, y)

    def project_many(self, lats, lons) -> np.ndarray:
        """Vectorised :meth:`project`; returns an (N, 2) array."""
        lats = np.asarray(lats, dtype=np.float64)
        lons = np.asarray(lons, dtype=np.float64)
        x = np.radians(lons - self.origin_lon) * self._cos_lat0 * self.radius
        y = np.radians(lats - self.origin_lat) * self.radius
        return np.column_stack([x, y])

    def bounds(self, dataset: Dataset) -> BoundingBox | None:
        """Projected extent of all nodes, or None for a node-less dataset."""
        if not dataset.nodes:
            return None
        nodes = list(dataset.nodes.values())
        xy = self.project_many([n.lat for n in nodes], [n.lon for n in nodes])
        return BoundingBox(float(xy[:, 0].min()), float(xy[:, 1].min()),
                           float(xy[:, 0].max()), float(xy[:, 1].max()))
