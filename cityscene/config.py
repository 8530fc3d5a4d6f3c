"""Pipeline tunables with documented defaults and environment overrides."""

import os
import logging
from dataclasses import dataclass, fields

from .constants import DEFAULT_BUILDING_HEIGHT, LEVEL_HEIGHT

logger = logging.getLogger(__name__)

_ENV_PREFIX = "CITYSCENE_"


@dataclass
class PipelineConfig:
    default_building_height: float = DEFAULT_BUILDING_HEIGHT
    level_height: float = LEVEL_HEIGHT
    # Two projected points closer than this are the same point (metres)
    epsilon: float = 0.05
    # Area rings drop corners whose triangle is at most this large (m²); 0 disables
    simplify_area: float = 0.1
    road_thickness: float = 0.2
    water_level: float = 0.02
    green_level: float = 0.01
    # Metres of wall/cap per texture repeat
    uv_tile: float = 4.0
    terrain_grid_step: float = 20.0
    terrain_amplitude: float = 2.0
    terrain_margin: float = 50.0
    terrain_feature_size: float = 250.0
    terrain_octaves: int = 3
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ=None) -> "PipelineConfig":
        """Build a config, overriding defaults from ``CITYSCENE_<FIELD>`` variables."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            cast = int if f.type in (int, "int") else float
            try:
                overrides[f.name] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {_ENV_PREFIX}{f.name.upper()}={raw!r}")
        return cls(**overrides)
