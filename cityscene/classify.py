"""Tag-based feature classification and attribute derivation."""

import logging
import re

from .config import PipelineConfig
from .constants import (
    DEFAULT_WATERWAY_WIDTH, GREEN_LANDUSE, HIGHWAY_WIDTHS, MIN_ROAD_WIDTH,
    WATERWAY_WIDTHS,
)
from .models import Category

logger = logging.getLogger(__name__)

_FEET_TO_METRES = 0.3048
_NUMBER_RE = re.compile(r'^\s*(-?\d+(?:[.,]\d+)?)\s*(m|metres|meters|ft|feet|\')?\s*$',
                        re.IGNORECASE)

# Travel direction along the way: 1 forward, -1 against, 0 both
_ONEWAY = {'yes': 1, 'true': 1, '1': 1, '-1': -1, 'reverse': -1}


def _is_building(tags: dict) -> bool:
    return any(tags.get(k, 'no') != 'no' for k in ('building', 'building:part'))


# Ordered rule table: first match wins.
CLASSIFICATION_RULES = (
    (_is_building, Category.building),
    (lambda t: 'highway' in t, Category.road),
    (lambda t: t.get('natural') == 'water' or 'waterway' in t, Category.water),
    (lambda t: t.get('landuse') in GREEN_LANDUSE, Category.green),
)


def classify(tags: dict) -> Category:
    for predicate, category in CLASSIFICATION_RULES:
        if predicate(tags):
            return category
    return Category.other


def parse_length(value: str | None) -> float | None:
    """Parse an OSM length tag ("12", "12.5 m", "40 ft") into metres."""
    if value is None:
        return None
    match = _NUMBER_RE.match(value)
    if not match:
        return None
    number = float(match.group(1).replace(',', '.'))
    unit = (match.group(2) or 'm').lower()
    if unit in ('ft', 'feet', "'"):
        number *= _FEET_TO_METRES
    return number


def _parse_levels(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        levels = float(value.replace(',', '.'))
    except ValueError:
        return None
    return levels if levels >= 0 else None


def building_height(tags: dict, config: PipelineConfig) -> float:
    height = parse_length(tags.get('height'))
    if height is not None and height > 0:
        return height
    levels = _parse_levels(tags.get('building:levels'))
    if levels:
        return levels * config.level_height
    return config.default_building_height


def building_min_height(tags: dict, height: float, config: PipelineConfig) -> float:
    min_height = parse_length(tags.get('min_height'))
    if min_height is None:
        min_level = _parse_levels(tags.get('building:min_level'))
        min_height = min_level * config.level_height if min_level else 0.0
    if min_height < 0 or min_height >= height:
        return 0.0
    return min_height


def road_width(tags: dict) -> float:
    width = parse_length(tags.get('width'))
    if width is not None and width > 0:
        return width
    highway = tags.get('highway', '')
    base = highway[:-len('_link')] if highway.endswith('_link') else highway
    return HIGHWAY_WIDTHS.get(base, MIN_ROAD_WIDTH)


def waterway_width(tags: dict) -> float:
    width = parse_length(tags.get('width'))
    if width is not None and width > 0:
        return width
    return WATERWAY_WIDTHS.get(tags.get('waterway', ''), DEFAULT_WATERWAY_WIDTH)


def feature_attributes(category: Category, tags: dict,
                       config: PipelineConfig) -> dict:
    """Attributes the geometry stages need, derived from *tags*."""
    attrs = {}
    if 'name' in tags:
        attrs['name'] = tags['name']

    if category == Category.building:
        height = building_height(tags, config)
        attrs['height'] = height
        attrs['min_height'] = building_min_height(tags, height, config)
        attrs['building'] = tags.get('building', tags.get('building:part', 'yes'))
    elif category == Category.road:
        attrs['highway'] = tags.get('highway', '')
        attrs['width'] = road_width(tags)
        attrs['oneway'] = _ONEWAY.get(tags.get('oneway', 'no'), 0)
    elif category == Category.water:
        if 'waterway' in tags:
            attrs['waterway'] = tags['waterway']
        attrs['width'] = waterway_width(tags)
    elif category == Category.green:
        attrs['landuse'] = tags.get('landuse', '')
    return attrs
