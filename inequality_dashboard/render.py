"""Figure builders for the four panels and the dispatch over them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from statsmodels.nonparametric.smoothers_lowess import lowess

from .measures import (
    LATEST,
    MEASURES,
    PANEL_GDP,
    PANEL_INCOME,
    PANEL_MAP,
    PANEL_MERGED,
    PANELS,
    SCOPE_SINGLE,
)
from .reconcile import known_years
from .view_filter import (
    POINT_BUDGET,
    brush_applies,
    filtered_rows,
    join_features,
    map_values,
)

CHART_LAYOUT = dict(
    plot_bgcolor='white',
    paper_bgcolor='white',
    font=dict(size=12, color='#222'),
    xaxis=dict(
        gridcolor='#e0e0e0',
        linecolor='#333',
        linewidth=2,
        showgrid=True,
        zeroline=True,
        zerolinecolor='#999',
        zerolinewidth=1
    ),
    yaxis=dict(
        gridcolor='#e0e0e0',
        linecolor='#333',
        linewidth=2,
        showgrid=True,
        zeroline=True,
        zerolinecolor='#999',
        zerolinewidth=1
    ),
    legend=dict(
        bgcolor='rgba(255,255,255,0.9)',
        bordercolor='#ccc',
        borderwidth=1
    )
)

COLORS = px.colors.qualitative.Bold
NO_DATA_FILL = '#e6e6e6'

# Minimum points before a LOWESS trend is drawn on the scatter
TREND_MIN_POINTS = 10


@dataclass(frozen=True)
class DashboardContext:
    """Everything one render pass reads; built fresh for each selection."""
    table: pd.DataFrame
    state: Any
    years: List[int]
    features: Optional[List[dict]] = None
    entity_colors: Optional[Dict[str, str]] = None
    point_budget: int = POINT_BUDGET
    chart_height: int = 420

    @classmethod
    def build(cls, table, state, features=None, point_budget=POINT_BUDGET, chart_height=420):
        return cls(
            table=table,
            state=state,
            years=known_years(table),
            features=features,
            entity_colors=entity_colors(table),
            point_budget=point_budget,
            chart_height=chart_height,
        )


@dataclass(frozen=True)
class RenderedPanel:
    figure: go.Figure
    title: str


def entity_colors(table):
    """Stable entity -> color map shared by every panel."""
    entities = sorted(table['entity'].unique()) if not table.empty else []
    return {entity: COLORS[i % len(COLORS)] for i, entity in enumerate(entities)}


def empty_figure(text, height=None):
    fig = go.Figure()
    fig.add_annotation(text=text, xref='paper', yref='paper', x=0.5, y=0.5, showarrow=False)
    fig.update_layout(**CHART_LAYOUT)
    fig.update_xaxes(visible=False)
    fig.update_yaxes(visible=False)
    if height:
        fig.update_layout(height=height)
    return fig


def _year_caption(state, panel, years):
    if state.year_scope == SCOPE_SINGLE:
        return f"in {state.year}"
    if brush_applies(state, panel):
        start, end = state.brush_selection
        return f"{start} to {end}"
    if years:
        return f"{years[0]} to {years[-1]}"
    return 'all years'


def panel_title(context, panel):
    """Human-readable title reflecting the active filters."""
    state = context.state
    if panel == PANEL_INCOME:
        title = f"{MEASURES[state.left_measure].label}, {_year_caption(state, panel, context.years)}"
    elif panel == PANEL_GDP:
        title = f"{MEASURES[state.right_measure].label}, {_year_caption(state, panel, context.years)}"
    elif panel == PANEL_MERGED:
        left = MEASURES[state.left_measure].label
        right = MEASURES[state.right_measure].label
        title = f"{left} vs {right}, {_year_caption(state, panel, context.years)}"
    else:
        when = 'latest available year' if state.map_year == LATEST else f"in {state.map_year}"
        title = f"{MEASURES[state.map_measure].label}, {when}"

    query = state.country_query.strip()
    if query:
        title += f" (countries matching '{query}')"
    return title


def _base_layout(fig, context, title, uirevision):
    fig.update_layout(
        **CHART_LAYOUT,
        title=title,
        height=context.chart_height,
        margin={'t': 50, 'b': 40, 'l': 60, 'r': 20},
        hovermode='closest',
        showlegend=False,
        uirevision=uirevision,
    )


def draw_timeseries(context, panel):
    state = context.state
    key = state.left_measure if panel == PANEL_INCOME else state.right_measure
    spec = MEASURES[key]
    title = panel_title(context, panel)
    rows = filtered_rows(context.table, state, panel, cap=context.point_budget, years=context.years)
    if rows.empty:
        return RenderedPanel(empty_figure('No data for the current selection', context.chart_height), title)

    mode = 'markers' if state.year_scope == SCOPE_SINGLE else 'lines+markers'
    colors = context.entity_colors or {}
    fig = go.Figure()
    for entity, group in rows.groupby('entity', sort=True):
        fig.add_trace(go.Scatter(
            x=group['year'],
            y=group[key],
            mode=mode,
            name=entity,
            text=[entity] * len(group),
            customdata=[spec.format_value(v) for v in group[key]],
            line=dict(width=2, color=colors.get(entity, COLORS[0])),
            marker=dict(size=6, color=colors.get(entity, COLORS[0]), line=dict(width=0.5, color='white')),
            hovertemplate=f'<b>%{{text}}</b><br>Year: %{{x}}<br>{spec.label}: %{{customdata}}<extra></extra>',
        ))

    _base_layout(fig, context, title, uirevision=f'{panel}-{key}')
    fig.update_layout(dragmode='select', selectdirection='h')
    fig.update_xaxes(title='Year', tickformat='d')
    fig.update_yaxes(title=spec.axis_label, tickformat=spec.tick_format, ticksuffix=spec.tick_suffix)
    return RenderedPanel(fig, title)


def draw_scatter(context):
    state = context.state
    y_spec = MEASURES[state.left_measure]
    x_spec = MEASURES[state.right_measure]
    title = panel_title(context, PANEL_MERGED)
    rows = filtered_rows(context.table, state, PANEL_MERGED, cap=context.point_budget, years=context.years)
    if rows.empty:
        return RenderedPanel(empty_figure('No data for the current selection', context.chart_height), title)

    colors = context.entity_colors or {}
    customdata = np.column_stack([
        rows['year'].astype(str),
        [x_spec.format_value(v) for v in rows[x_spec.key]],
        [y_spec.format_value(v) for v in rows[y_spec.key]],
    ])
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=rows[x_spec.key],
        y=rows[y_spec.key],
        mode='markers',
        name='Country-years',
        text=rows['entity'],
        customdata=customdata,
        marker=dict(
            size=8,
            opacity=0.7,
            color=[colors.get(e, COLORS[0]) for e in rows['entity']],
            line=dict(width=0.5, color='white'),
        ),
        hovertemplate=(
            '<b>%{text}</b><br>Year: %{customdata[0]}<br>'
            f'{x_spec.label}: %{{customdata[1]}}<br>'
            f'{y_spec.label}: %{{customdata[2]}}<extra></extra>'
        ),
    ))

    if len(rows) >= TREND_MIN_POINTS and rows[x_spec.key].nunique() > 1:
        trend = lowess(rows[y_spec.key], rows[x_spec.key], frac=0.3)
        fig.add_trace(go.Scatter(
            x=trend[:, 0],
            y=trend[:, 1],
            mode='lines',
            name='LOWESS trend',
            line=dict(color='#333', width=3),
            hoverinfo='skip',
        ))

    _base_layout(fig, context, title, uirevision=f'merged-{x_spec.key}-{y_spec.key}')
    fig.update_xaxes(title=x_spec.axis_label, tickformat=x_spec.tick_format, ticksuffix=x_spec.tick_suffix)
    fig.update_yaxes(title=y_spec.axis_label, tickformat=y_spec.tick_format, ticksuffix=y_spec.tick_suffix)
    return RenderedPanel(fig, title)


def _colorbar(spec):
    return {'title': spec.label, 'thickness': 15, 'len': 0.7, 'tickformat': spec.tick_format,
            'ticksuffix': spec.tick_suffix}


def draw_map(context):
    state = context.state
    spec = MEASURES[state.map_measure]
    title = panel_title(context, PANEL_MAP)
    values = map_values(context.table, state)
    diverging = dict(zmid=0) if spec.scale_kind == 'diverging' else {}

    fig = go.Figure()
    if context.features:
        features, joined = join_features(context.features, values)
        geojson = {'type': 'FeatureCollection', 'features': features}
        keys = [f['id'] for f in features]
        fig.add_trace(go.Choropleth(
            geojson=geojson,
            locations=keys,
            z=[0] * len(keys),
            colorscale=[[0, NO_DATA_FILL], [1, NO_DATA_FILL]],
            showscale=False,
            text=[f['properties'].get('name') or f['id'] for f in features],
            hovertemplate='<b>%{text}</b><br>No data available<extra></extra>',
            marker_line_color='white',
        ))
        if not joined.empty:
            fig.add_trace(go.Choropleth(
                geojson=geojson,
                locations=joined['feature_key'],
                z=joined['value'],
                colorscale=spec.colorscale,
                text=joined['name'],
                customdata=np.column_stack([
                    joined['year'].astype(str),
                    [spec.format_value(v) for v in joined['value']],
                ]),
                hovertemplate=(
                    f'<b>%{{text}}</b><br>{spec.label}: %{{customdata[1]}}'
                    '<br>Year: %{customdata[0]}<extra></extra>'
                ),
                colorbar=_colorbar(spec),
                marker_line_color='white',
                **diverging,
            ))
        fig.update_geos(fitbounds='locations', visible=False)
    else:
        coded = values.dropna(subset=['code'])
        if coded.empty:
            return RenderedPanel(empty_figure('No map data for the current selection', context.chart_height), title)
        fig.add_trace(go.Choropleth(
            locations=coded['code'],
            locationmode='ISO-3',
            z=coded['value'],
            colorscale=spec.colorscale,
            text=coded['entity'],
            customdata=np.column_stack([
                coded['year'].astype(str),
                [spec.format_value(v) for v in coded['value']],
            ]),
            hovertemplate=(
                f'<b>%{{text}}</b><br>{spec.label}: %{{customdata[1]}}'
                '<br>Year: %{customdata[0]}<extra></extra>'
            ),
            colorbar=_colorbar(spec),
            **diverging,
        ))
        fig.update_geos(
            showframe=True,
            framecolor='#333',
            framewidth=2,
            showcoastlines=True,
            coastlinecolor='#666',
            projection_type='natural earth',
        )

    fig.update_layout(
        **CHART_LAYOUT,
        title=title,
        height=context.chart_height,
        margin={'t': 40, 'b': 0, 'l': 0, 'r': 0},
        dragmode='pan',
        uirevision=f'map-{spec.key}',
    )
    if state.map_view is not None:
        lon, lat, scale = state.map_view
        fig.update_geos(fitbounds=False, center=dict(lon=lon, lat=lat), projection_scale=scale)
    return RenderedPanel(fig, title)


def render_panel(context, panel):
    if panel in (PANEL_INCOME, PANEL_GDP):
        return draw_timeseries(context, panel)
    if panel == PANEL_MERGED:
        return draw_scatter(context)
    if panel == PANEL_MAP:
        return draw_map(context)
    raise ValueError(f"Unknown panel: {panel!r}")


def render_dashboard(context, targets=PANELS):
    """Build every requested panel; panels without a target are skipped."""
    wanted = set(targets or ())
    return {panel: render_panel(context, panel) for panel in PANELS if panel in wanted}
