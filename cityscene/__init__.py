"""CityScene package: 3D scenes from OpenStreetMap element lists.

Import constants FIRST so environment and logging are configured before
any other module runs.
"""

from cityscene import constants as _constants  # noqa: F401

from cityscene.builder import SceneBuilder
from cityscene.config import PipelineConfig
from cityscene.scene import LoadSummary, Scene
