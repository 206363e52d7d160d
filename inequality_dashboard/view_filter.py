"""Per-view row selection from the reconciled table."""
from __future__ import annotations

import math

import pandas as pd

from .measures import (
    BRUSHABLE_PANELS,
    LATEST,
    PANEL_GDP,
    PANEL_INCOME,
    PANEL_MAP,
    PANEL_MERGED,
    SCOPE_ALL,
    SCOPE_SINGLE,
)
from .reconcile import known_years
from .selection import resolve_year

# Most points a single panel draws
POINT_BUDGET = 4000

JOINED_COLUMNS = ['feature_key', 'name', 'entity', 'code', 'year', 'value']


def panel_measures(state, panel):
    """Measure columns the given panel plots."""
    if panel == PANEL_INCOME:
        return [state.left_measure]
    if panel == PANEL_GDP:
        return [state.right_measure]
    if panel == PANEL_MERGED:
        return list(dict.fromkeys([state.left_measure, state.right_measure]))
    if panel == PANEL_MAP:
        return [state.map_measure]
    raise ValueError(f"Unknown panel: {panel!r}")


def downsample(rows, cap=POINT_BUDGET):
    """Keep every ``ceil(n / cap)``-th row so at most ``cap`` rows remain."""
    n = len(rows)
    if cap is None or n <= cap:
        return rows
    step = math.ceil(n / cap)
    if isinstance(rows, (pd.DataFrame, pd.Series)):
        return rows.iloc[::step]
    return rows[::step]


def brush_applies(state, panel, active_panel_only=True):
    """Whether the brush narrows the given panel under the current selection."""
    return (
        state.brush_selection is not None
        and state.year_scope == SCOPE_ALL
        and panel in BRUSHABLE_PANELS
        and (panel == state.active_panel or not active_panel_only)
    )


def filter_country(rows, query):
    query = (query or '').strip()
    if not query:
        return rows
    return rows[rows['entity'].str.contains(query, case=False, regex=False, na=False)]


def filtered_rows(table, state, panel=None, active_panel_only=True, cap=POINT_BUDGET, years=None):
    """Rows a time-series or scatter panel should draw.

    Filters apply in a fixed order: country query, year scope, brush, measure
    presence, then downsampling. The brush narrows only brushable panels, and
    only the active one unless ``active_panel_only`` is False.
    """
    panel = panel or state.active_panel
    if panel == PANEL_MAP:
        raise ValueError('The map panel resolves its values with map_values()')

    rows = filter_country(table, state.country_query)

    if state.year_scope == SCOPE_SINGLE:
        year = resolve_year(state.year, years if years is not None else known_years(table))
        rows = rows[rows['year'] == year]

    if brush_applies(state, panel, active_panel_only):
        start, end = state.brush_selection
        rows = rows[(rows['year'] >= start) & (rows['year'] <= end)]

    rows = rows.dropna(subset=panel_measures(state, panel))
    return downsample(rows, cap)


def map_values(table, state):
    """One value per entity for the choropleth.

    With ``map_year`` set, the value observed in that year; otherwise each
    entity's most recent non-missing value. The brush never applies here.
    """
    col = state.map_measure
    rows = filter_country(table, state.country_query).dropna(subset=[col])
    if state.map_year != LATEST:
        rows = rows[rows['year'] == int(state.map_year)]
    else:
        rows = rows.sort_values(['entity', 'year']).groupby('entity', sort=False).tail(1)
    out = rows[['entity', 'code', 'year', col]].rename(columns={col: 'value'})
    return out.sort_values('entity').reset_index(drop=True)


def join_features(features, values):
    """Attach resolved values to map features, matching by code then by name.

    Returns ``(augmented_features, joined)`` where the features are copies
    whose ``id`` is the join key and ``joined`` holds one row per matched
    feature for the choropleth trace.
    """
    by_code = {}
    by_name = {}
    for row in values.to_dict('records'):
        if row.get('code'):
            by_code.setdefault(str(row['code']).upper(), row)
        by_name.setdefault(str(row['entity']).casefold(), row)

    augmented = []
    joined = []
    for feature in features:
        props = feature.get('properties') or {}
        code = (props.get('code') or '').upper() or None
        name = props.get('name')
        row = by_code.get(code) if code else None
        if row is None and name:
            row = by_name.get(name.casefold())
        key = code or name

        new_props = dict(props, feature_key=key, value=None, year=None)
        if row is not None:
            new_props.update(value=row['value'], year=int(row['year']))
            joined.append({
                'feature_key': key,
                'name': name or row['entity'],
                'entity': row['entity'],
                'code': code or row.get('code'),
                'year': int(row['year']),
                'value': row['value'],
            })
        augmented.append(dict(feature, id=key, properties=new_props))

    return augmented, pd.DataFrame(joined, columns=JOINED_COLUMNS)
