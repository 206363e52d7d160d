"""
Tests for inequality_dashboard/render.py

Figures are inspected as plotly objects; no browser involved.
"""
import plotly.graph_objects as go

from inequality_dashboard.measures import PANELS
from inequality_dashboard.render import (
    DashboardContext,
    entity_colors,
    panel_title,
    render_dashboard,
    render_panel,
)
from inequality_dashboard.selection import SelectionState


def _context(table, features=None, **state):
    return DashboardContext.build(table, SelectionState(**state), features=features)


def test_render_all_panels(table, features):
    rendered = render_dashboard(_context(table, features))
    assert set(rendered) == set(PANELS)
    for panel in rendered.values():
        assert isinstance(panel.figure, go.Figure)
        assert panel.title


def test_missing_targets_are_skipped(table):
    rendered = render_dashboard(_context(table), targets=('income',))
    assert list(rendered) == ['income']
    assert render_dashboard(_context(table), targets=()) == {}


def test_timeseries_one_trace_per_entity(table):
    panel = render_panel(_context(table, active_panel='income'), 'income')
    names = sorted(trace.name for trace in panel.figure.data)
    assert names == ['Chile', 'China', 'France']
    assert panel.figure.layout.dragmode == 'select'


def test_entity_colors_shared_between_panels(table):
    context = _context(table)
    income = render_panel(context, 'income').figure
    gdp = render_panel(context, 'gdp').figure
    income_colors = {t.name: t.marker.color for t in income.data}
    gdp_colors = {t.name: t.marker.color for t in gdp.data}
    for name in set(income_colors) & set(gdp_colors):
        assert income_colors[name] == gdp_colors[name]
    assert set(entity_colors(table)) == {'Chile', 'China', 'France'}


def test_empty_selection_renders_annotation(table):
    panel = render_panel(_context(table, country_query='zzz'), 'merged')
    assert len(panel.figure.data) == 0
    assert panel.figure.layout.annotations[0].text == 'No data for the current selection'
    assert "'zzz'" in panel.title


def test_scatter_without_trend_for_few_points(table):
    panel = render_panel(_context(table), 'merged')
    assert len(panel.figure.data) == 1
    assert len(panel.figure.data[0].x) == 5


def test_scatter_trend_line_with_enough_points():
    import pandas as pd
    from inequality_dashboard.reconcile import reconcile

    income = [{'entity': f'C{i}', 'year': 2000, 'value': float(i)} for i in range(12)]
    gdp = [{'entity': f'C{i}', 'year': 2000, 'value': 1000.0 + 50 * i} for i in range(12)]
    table = reconcile(income, gdp)
    assert isinstance(table, pd.DataFrame)
    panel = render_panel(_context(table), 'merged')
    assert [t.name for t in panel.figure.data] == ['Country-years', 'LOWESS trend']


def test_map_with_features_joins_values(table, features):
    panel = render_panel(_context(table, features), 'map')
    base, values = panel.figure.data
    assert list(base.locations) == ['CHN', 'chile', 'FRA', 'ATL']
    assert sorted(values.locations) == ['CHN', 'FRA', 'chile']


def test_map_without_features_uses_iso_codes(table):
    panel = render_panel(_context(table), 'map')
    trace = panel.figure.data[0]
    assert trace.locationmode == 'ISO-3'
    assert sorted(trace.locations) == ['CHL', 'CHN', 'FRA']


def test_diverging_map_is_centred(table):
    panel = render_panel(_context(table, map_measure='gdp_growth'), 'map')
    assert panel.figure.data[0].zmid == 0


def test_map_view_applied(table):
    panel = render_panel(_context(table, map_view=(10.0, 20.0, 3.0)), 'map')
    geo = panel.figure.layout.geo
    assert geo.center.lon == 10.0
    assert geo.projection.scale == 3.0


def test_titles_reflect_filters(table):
    context = _context(table, active_panel='income', brush_selection=(1990, 2000))
    assert panel_title(context, 'income') == 'Top 1% income share, 1990 to 2000'
    assert panel_title(context, 'gdp') == 'GDP per capita, 1980 to 2000'

    single = _context(table, year_scope='single', year=1990, country_query='fr')
    assert panel_title(single, 'merged') == "Top 1% income share vs GDP per capita, in 1990 (countries matching 'fr')"
    assert panel_title(single, 'map') == "GDP per capita, latest available year (countries matching 'fr')"
