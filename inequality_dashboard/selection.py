"""The dashboard selection: defaults, validation and the update pipeline.

A :class:`SelectionState` is an immutable value. Controls never mutate it;
they describe what changed as a patch and :func:`apply_update` returns the
next selection. Every value it returns satisfies the same rules:

* ``year`` is ``'latest'`` while all years are shown and a known year when a
  single year is shown;
* ``map_year`` is ``'latest'`` or a known year;
* ``brush_selection`` is only set while all years are shown on a brushable
  panel, and both endpoints are known years with ``start <= end``.
"""
from __future__ import annotations

import logging
import math
from bisect import bisect_left, bisect_right
from dataclasses import asdict, dataclass, fields, replace
from typing import Optional, Tuple, Union

from .measures import (
    BRUSHABLE_PANELS,
    LATEST,
    MAP_MEASURE_KEYS,
    MEASURE_KEYS,
    PANEL_MERGED,
    PANELS,
    SCOPE_ALL,
    SCOPE_SINGLE,
    SCOPES,
)
from .url_codec import decode

logger = logging.getLogger(__name__)

_INVALID = object()


@dataclass(frozen=True)
class SelectionState:
    left_measure: str = 'top1_share'
    right_measure: str = 'gdp_per_capita'
    map_measure: str = 'gdp_per_capita'
    year_scope: str = SCOPE_ALL
    year: Union[int, str] = LATEST
    map_year: Union[int, str] = LATEST
    country_query: str = ''
    active_panel: str = PANEL_MERGED
    brush_selection: Optional[Tuple[int, int]] = None
    map_view: Optional[Tuple[float, float, float]] = None

    def to_dict(self):
        """JSON-friendly form for the browser-side store."""
        data = asdict(self)
        for key in ('brush_selection', 'map_view'):
            if data[key] is not None:
                data[key] = list(data[key])
        return data

    @classmethod
    def from_dict(cls, data, years):
        """Rebuild a selection from :meth:`to_dict` output, re-validating it."""
        return apply_update(cls(), data or {}, years, keep_brush=True)


FIELD_NAMES = tuple(f.name for f in fields(SelectionState))


def resolve_year(year, years):
    """Concrete year for ``year``; ``'latest'`` is the maximum known year."""
    if year == LATEST:
        return max(years) if len(years) else None
    return int(year)


def snap_brush(raw_start, raw_end, years):
    """Snap a fractional year range outward onto known years.

    The start moves to the closest known year at or before it and the end to
    the closest known year at or after it; out-of-range endpoints clamp to
    the first/last known year. Returns None when no years are known
    or an endpoint is not finite.
    """
    ys = sorted(set(int(y) for y in years))
    if not ys:
        return None
    lo, hi = float(raw_start), float(raw_end)
    if not (math.isfinite(lo) and math.isfinite(hi)):
        return None
    if lo > hi:
        lo, hi = hi, lo
    i = bisect_right(ys, lo) - 1
    start = ys[i] if i >= 0 else ys[0]
    j = bisect_left(ys, hi)
    end = ys[j] if j < len(ys) else ys[-1]
    return (start, end)


def brush_from_selection(selected_data, years):
    """Year range for a plotly ``selectedData`` payload; None clears the brush."""
    if not selected_data:
        return None
    xs = (selected_data.get('range') or {}).get('x')
    if not xs or len(xs) < 2:
        points = [p.get('x') for p in selected_data.get('points') or [] if p.get('x') is not None]
        if not points:
            return None
        xs = [min(points), max(points)]
    try:
        return snap_brush(float(xs[0]), float(xs[-1]), years)
    except (TypeError, ValueError):
        return None


def _year_value(raw, years):
    if raw == LATEST:
        return LATEST
    try:
        year = int(raw)
    except (TypeError, ValueError):
        return _INVALID
    return year if year in years else _INVALID


def _brush_value(raw, years):
    if raw is None:
        return None
    try:
        start, end = raw
        value = snap_brush(start, end, years)
    except (TypeError, ValueError):
        return _INVALID
    return _INVALID if value is None else value


def _view_value(raw):
    if raw is None:
        return None
    try:
        lon, lat, scale = (float(v) for v in raw)
    except (TypeError, ValueError):
        return _INVALID
    if not all(math.isfinite(v) for v in (lon, lat, scale)) or scale <= 0:
        return _INVALID
    return (lon, lat, scale)


def _validate(field, raw, years):
    if field in ('left_measure', 'right_measure'):
        return raw if raw in MEASURE_KEYS else _INVALID
    if field == 'map_measure':
        return raw if raw in MAP_MEASURE_KEYS else _INVALID
    if field == 'year_scope':
        return raw if raw in SCOPES else _INVALID
    if field in ('year', 'map_year'):
        return _year_value(raw, years)
    if field == 'country_query':
        return '' if raw is None else str(raw)
    if field == 'active_panel':
        return raw if raw in PANELS else _INVALID
    if field == 'brush_selection':
        return _brush_value(raw, years)
    return _view_value(raw)


def _normalise(state, years):
    changes = {}
    if state.year_scope == SCOPE_ALL:
        if state.year != LATEST:
            changes['year'] = LATEST
    elif state.year == LATEST or state.year not in years:
        changes['year'] = resolve_year(LATEST, years) if years else LATEST

    if state.map_year != LATEST and state.map_year not in years:
        changes['map_year'] = LATEST

    brushable = state.year_scope == SCOPE_ALL and state.active_panel in BRUSHABLE_PANELS
    if state.brush_selection is not None and not brushable:
        changes['brush_selection'] = None

    return replace(state, **changes) if changes else state


def apply_update(state, patch, years, keep_brush=False):
    """Return the selection that results from applying ``patch`` to ``state``.

    ``patch`` maps field names to raw control values. Invalid values leave
    their field unchanged and unknown fields are ignored. Switching panel or
    switching to a single year drops the brush, unless the patch sets one.
    """
    years = sorted(set(int(y) for y in years))
    changes = {}
    for field, raw in (patch or {}).items():
        if field not in FIELD_NAMES:
            continue
        value = _validate(field, raw, years)
        if value is _INVALID:
            logger.debug("Rejected %s=%r", field, raw)
            continue
        changes[field] = value

    new_state = replace(state, **changes)
    if not keep_brush and 'brush_selection' not in changes:
        panel_changed = new_state.active_panel != state.active_panel
        went_single = new_state.year_scope == SCOPE_SINGLE and state.year_scope != SCOPE_SINGLE
        if panel_changed or went_single:
            new_state = replace(new_state, brush_selection=None)
    return _normalise(new_state, years)


def build_initial_selections(years, url_params=None, force_defaults=False):
    """Selection for page load (from the URL) or for the reset action."""
    years = sorted(set(int(y) for y in years))
    if force_defaults:
        return _normalise(SelectionState(), years)
    return _normalise(replace(SelectionState(), **decode(url_params, years)), years)
