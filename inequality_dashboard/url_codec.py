"""Query-string encoding of the dashboard selection.

Every selection field has one short key. Parameters that carry no meaning in
the current mode are left out (``year`` while all years are shown, an empty
``q``, ``mapYear=latest``, an unset brush or map view), so a decoded link
reproduces exactly the selection it was encoded from.
"""
from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from urllib.parse import parse_qs, urlencode

from .measures import LATEST, MAP_MEASURE_KEYS, MEASURE_KEYS, PANELS, SCOPE_ALL, SCOPES

logger = logging.getLogger(__name__)

# query key -> selection field
PARAM_FIELDS = {
    'left': 'left_measure',
    'right': 'right_measure',
    'map': 'map_measure',
    'mapYear': 'map_year',
    'scope': 'year_scope',
    'year': 'year',
    'q': 'country_query',
    'tab': 'active_panel',
    'brush': 'brush_selection',
    'view': 'map_view',
}

_BRUSH_RE = re.compile(r'^(-?\d+)-(-?\d+)$')


def parse_query(query):
    """Flatten a query string (or parsed mapping) to one value per key."""
    if query is None:
        return {}
    if isinstance(query, Mapping):
        flat = {}
        for key, value in query.items():
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                value = value[0]
            flat[str(key)] = '' if value is None else str(value)
        return flat
    text = str(query)
    if text.startswith('?'):
        text = text[1:]
    return {key: values[0] for key, values in parse_qs(text, keep_blank_values=True).items()}


def _parse_year(raw, years):
    if raw == LATEST:
        return LATEST
    try:
        year = int(raw)
    except (TypeError, ValueError):
        return None
    return year if year in years else None


def _parse_brush(raw, years):
    match = _BRUSH_RE.match(raw.strip())
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if start > end or start not in years or end not in years:
        return None
    return (start, end)


def _parse_view(raw):
    parts = raw.split(',')
    if len(parts) != 3:
        return None
    try:
        lon, lat, scale = (float(p) for p in parts)
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in (lon, lat, scale)) or scale <= 0:
        return None
    return (lon, lat, scale)


def decode(query, years):
    """Return the selection fields whose query parameters are valid.

    Unknown keys and values outside a field's domain are dropped; the caller
    fills the gaps with defaults.
    """
    params = parse_query(query)
    known = set(int(y) for y in years)
    fields = {}

    for key, raw in params.items():
        field = PARAM_FIELDS.get(key)
        if field is None:
            continue
        if field in ('left_measure', 'right_measure'):
            value = raw if raw in MEASURE_KEYS else None
        elif field == 'map_measure':
            value = raw if raw in MAP_MEASURE_KEYS else None
        elif field == 'year_scope':
            value = raw if raw in SCOPES else None
        elif field in ('year', 'map_year'):
            value = _parse_year(raw, known)
        elif field == 'country_query':
            value = raw
        elif field == 'active_panel':
            value = raw if raw in PANELS else None
        elif field == 'brush_selection':
            value = _parse_brush(raw, known)
        else:
            value = _parse_view(raw)

        if value is None:
            logger.debug("Ignoring invalid query parameter %s=%r", key, raw)
            continue
        fields[field] = value
    return fields


def encode(state):
    """Serialize a selection to a query string starting with ``?``."""
    pairs = [
        ('left', state.left_measure),
        ('right', state.right_measure),
        ('map', state.map_measure),
    ]
    if state.map_year != LATEST:
        pairs.append(('mapYear', str(state.map_year)))
    pairs.append(('scope', state.year_scope))
    if state.year_scope != SCOPE_ALL and state.year != LATEST:
        pairs.append(('year', str(state.year)))
    if state.country_query:
        pairs.append(('q', state.country_query))
    pairs.append(('tab', state.active_panel))
    if state.brush_selection is not None:
        start, end = state.brush_selection
        pairs.append(('brush', f'{int(start)}-{int(end)}'))
    if state.map_view is not None:
        pairs.append(('view', ','.join(repr(float(v)) for v in state.map_view)))
    return '?' + urlencode(pairs)
