"""Fixed selection domains and per-measure presentation records."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

LATEST = 'latest'

SCOPE_ALL = 'all'
SCOPE_SINGLE = 'single'
SCOPES = (SCOPE_ALL, SCOPE_SINGLE)

PANEL_INCOME = 'income'
PANEL_GDP = 'gdp'
PANEL_MERGED = 'merged'
PANEL_MAP = 'map'
PANELS = (PANEL_INCOME, PANEL_GDP, PANEL_MERGED, PANEL_MAP)

# Panels whose year axis can be narrowed by a brush
BRUSHABLE_PANELS = (PANEL_INCOME, PANEL_GDP, PANEL_MERGED)

PANEL_TITLES = {
    PANEL_INCOME: 'Income share',
    PANEL_GDP: 'GDP',
    PANEL_MERGED: 'Income share vs GDP',
    PANEL_MAP: 'Map',
}


def _fmt(pattern: str) -> Callable[[Optional[float]], str]:
    def formatter(value):
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return 'No data'
        return pattern.format(value)
    return formatter


@dataclass(frozen=True)
class MeasureSpec:
    key: str
    label: str
    axis_label: str
    tick_format: str
    tick_suffix: str
    format_value: Callable[[Optional[float]], str]
    scale_kind: str  # 'sequential' or 'diverging'
    colorscale: Any


MEASURES: Dict[str, MeasureSpec] = {
    'top1_share': MeasureSpec(
        key='top1_share',
        label='Top 1% income share',
        axis_label='Top 1% income share (%)',
        tick_format='.1f',
        tick_suffix='%',
        format_value=_fmt('{:.1f}%'),
        scale_kind='sequential',
        colorscale='Oranges',
    ),
    'gdp_per_capita': MeasureSpec(
        key='gdp_per_capita',
        label='GDP per capita',
        axis_label='GDP per capita (USD)',
        tick_format='$,.0f',
        tick_suffix='',
        format_value=_fmt('${:,.0f}'),
        scale_kind='sequential',
        colorscale=[[0, '#cfe2f2'], [1, '#0d306b']],
    ),
    'gdp_growth': MeasureSpec(
        key='gdp_growth',
        label='GDP per capita growth',
        axis_label='GDP per capita growth (% YoY)',
        tick_format='+.1f',
        tick_suffix='%',
        format_value=_fmt('{:+.2f}%'),
        scale_kind='diverging',
        colorscale='RdBu',
    ),
    'top1_share_change': MeasureSpec(
        key='top1_share_change',
        label='Change in top 1% share',
        axis_label='Change in top 1% share (pp YoY)',
        tick_format='+.2f',
        tick_suffix=' pp',
        format_value=_fmt('{:+.2f} pp'),
        scale_kind='diverging',
        colorscale='PuOr',
    ),
}

MEASURE_KEYS = tuple(MEASURES)

# Measures allowed on the choropleth
MAP_MEASURE_KEYS = MEASURE_KEYS


def measure(key):
    """Look up a measure record, raising KeyError for unknown keys."""
    return MEASURES[key]
