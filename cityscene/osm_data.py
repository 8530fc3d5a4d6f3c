"""OSM JSON ingestion: raw element list to a typed in-memory dataset."""

import json
import logging
import math

from .models import Dataset, Member, Node, Rejected, Relation, Way

logger = logging.getLogger(__name__)

_KINDS = ('node', 'way', 'relation')


class ParseError(Exception):
    """The response is not an ``{"elements": [...]}`` document."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class _MalformedElement(Exception):
    pass


def _get_id(obj: dict) -> int:
    value = obj.get('id')
    # bool is an int subclass; OSM ids are never booleans
    if isinstance(value, bool) or not isinstance(value, int):
        raise _MalformedElement("element needs an integral `id`")
    return value


def _get_tags(obj: dict) -> dict:
    tags = obj.get('tags')
    if tags is None:
        return {}
    if not isinstance(tags, dict):
        raise _MalformedElement("`tags` must be an object")
    return {str(k): v if isinstance(v, str) else str(v) for k, v in tags.items()}


def _get_coord(obj: dict, key: str) -> float:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _MalformedElement(f"node needs a numeric `{key}`")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise _MalformedElement(f"node `{key}` is not finite")
    return value


def _parse_node(obj: dict, index: int) -> Node:
    return Node(id=_get_id(obj), lat=_get_coord(obj, 'lat'),
                lon=_get_coord(obj, 'lon'), tags=_get_tags(obj), index=index)


def _parse_way(obj: dict, index: int) -> Way:
    nodes = obj.get('nodes')
    if not isinstance(nodes, list) or not all(
            isinstance(n, int) and not isinstance(n, bool) for n in nodes):
        raise _MalformedElement("way needs an integer `nodes` array")
    return Way(id=_get_id(obj), node_ids=list(nodes), tags=_get_tags(obj),
               index=index)


def _parse_relation(obj: dict, index: int) -> Relation:
    raw_members = obj.get('members')
    if not isinstance(raw_members, list):
        raise _MalformedElement("relation needs a `members` array")
    members = []
    for m in raw_members:
        if not isinstance(m, dict):
            raise _MalformedElement("relation member must be an object")
        ref = m.get('ref')
        if isinstance(ref, bool) or not isinstance(ref, int):
            raise _MalformedElement("relation member needs an integral `ref`")
        role = m.get('role')
        members.append(Member(role=role if isinstance(role, str) else '',
                              type=str(m.get('type', '')), ref=ref))
    return Relation(id=_get_id(obj), members=members, tags=_get_tags(obj),
                    index=index)


_PARSERS = {
    'node': _parse_node,
    'way': _parse_way,
    'relation': _parse_relation,
}


def _decode(raw):
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError(f"response is not UTF-8: {e}")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"syntax error in JSON at line {e.lineno} "
                             f"char {e.colno}")
    return raw


def parse(raw) -> Dataset:
    """Parse an OSM/Overpass JSON document into a :class:`Dataset`.

    *raw* may be the decoded document or its JSON text.  Raises
    :class:`ParseError` when the top-level ``elements`` list is absent or
    malformed.  Individual bad elements never fail the parse: they are
    recorded in ``dataset.rejected`` with one reason each.
    """
    doc = _decode(raw)
    if not isinstance(doc, dict):
        raise ParseError("OSM JSON root must be an object")
    elements = doc.get('elements')
    if not isinstance(elements, list):
        raise ParseError("OSM JSON root needs an `elements` key that is an array")

    dataset = Dataset()
    tables = {
        'node': dataset.nodes,
        'way': dataset.ways,
        'relation': dataset.relations,
    }

    for index, obj in enumerate(elements):
        if not isinstance(obj, dict):
            logger.warning(f"Dropping element {index}: not an object")
            dataset.rejected.append(Rejected(index, '', None, 'malformed_element'))
            continue

        kind = obj.get('type')
        if kind not in _KINDS:
            logger.debug(f"Ignoring element {index} of unknown type {kind!r}")
            dataset.rejected.append(Rejected(index, str(kind), None, 'unknown_kind'))
            continue

        try:
            element = _PARSERS[kind](obj, index)
        except _MalformedElement as e:
            raw_id = obj.get('id')
            logger.warning(f"Dropping malformed {kind} {raw_id}: {e}")
            dataset.rejected.append(Rejected(
                index, kind, raw_id if isinstance(raw_id, int) else None,
                'malformed_element'))
            continue

        table = tables[kind]
        previous = table.get(element.id)
        if previous is not None:
            logger.warning(f"Duplicate {kind} id {element.id}: "
                           f"element {index} replaces element {previous.index}")
            dataset.rejected.append(Rejected(
                previous.index, kind, element.id, 'duplicate_id'))
        table[element.id] = element

    logger.info(f"Parsed {len(dataset.nodes)} nodes, {len(dataset.ways)} ways, "
                f"{len(dataset.relations)} relations "
                f"({len(dataset.rejected)} rejected)")
    return dataset
