"""Dash application: layout, the selection callback and the render callback."""
from __future__ import annotations

import logging

import dash
import dash_bootstrap_components as dbc
from dash import ctx, dcc, html, no_update
from dash.dependencies import Input, Output, State
from dash.exceptions import PreventUpdate

from .config import ViewConfig
from .measures import (
    LATEST,
    MAP_MEASURE_KEYS,
    MEASURE_KEYS,
    MEASURES,
    PANEL_GDP,
    PANEL_INCOME,
    PANEL_MAP,
    PANEL_MERGED,
    PANEL_TITLES,
    PANELS,
    SCOPE_ALL,
    SCOPE_SINGLE,
)
from .reconcile import known_years
from .render import DashboardContext, render_dashboard
from .selection import (
    SelectionState,
    apply_update,
    brush_from_selection,
    build_initial_selections,
    resolve_year,
)
from .url_codec import encode

logger = logging.getLogger(__name__)

APP_TITLE = 'Top 1% Income Share & GDP per Capita'

LABEL_STYLE = {'fontWeight': '600', 'marginBottom': '5px'}

# Writes the encoded selection into the address bar without adding a history entry
REPLACE_URL_JS = """
function(query) {
    if (query === undefined || query === null) {
        return window.dash_clientside.no_update;
    }
    if (window.location.search !== query) {
        window.history.replaceState(window.history.state, '',
            window.location.pathname + query + window.location.hash);
    }
    return query;
}
"""

# control id -> selection field it owns
CONTROL_FIELDS = {
    'left-measure': 'left_measure',
    'right-measure': 'right_measure',
    'map-measure': 'map_measure',
    'year-scope': 'year_scope',
    'year-dropdown': 'year',
    'map-year-dropdown': 'map_year',
    'country-search': 'country_query',
    'panel-tabs': 'active_panel',
}

BRUSH_GRAPHS = {'income-graph': PANEL_INCOME, 'gdp-graph': PANEL_GDP}


def _measure_options(keys):
    return [{'label': MEASURES[k].label, 'value': k} for k in keys]


def _graph(panel, view):
    return dcc.Graph(
        id=f'{panel}-graph',
        config={'displayModeBar': False, 'scrollZoom': panel == PANEL_MAP},
        style={'height': f'{view.chart_height}px'},
    )


def build_layout(years, view=None):
    view = view or ViewConfig()
    min_year = years[0] if years else 0
    max_year = years[-1] if years else 0
    step = 10 if max_year - min_year > 40 else 5

    return dbc.Container([
        dcc.Location(id='url', refresh=False),
        dcc.Store(id='selection-state'),
        dcc.Store(id='query-string'),
        dcc.Store(id='url-sync'),

        # Header
        dbc.Row([
            dbc.Col([
                html.H2(APP_TITLE, className='text-center mb-2')
            ])
        ]),

        # Measure controls
        dbc.Row([
            dbc.Col([
                html.Label("Income panel measure", style=LABEL_STYLE),
                dcc.Dropdown(id='left-measure', options=_measure_options(MEASURE_KEYS), clearable=False),
            ], width=3),
            dbc.Col([
                html.Label("GDP panel measure", style=LABEL_STYLE),
                dcc.Dropdown(id='right-measure', options=_measure_options(MEASURE_KEYS), clearable=False),
            ], width=3),
            dbc.Col([
                html.Label("Map measure", style=LABEL_STYLE),
                dcc.Dropdown(id='map-measure', options=_measure_options(MAP_MEASURE_KEYS), clearable=False),
            ], width=3),
            dbc.Col([
                html.Label(" ", style=LABEL_STYLE),
                dbc.Button("Reset view", id='reset-button', color='secondary', outline=True,
                           n_clicks=0, className='w-100'),
            ], width=3),
        ], style={'marginBottom': '15px'}),

        # Year and country controls
        dbc.Row([
            dbc.Col([
                html.Label("Years", style=LABEL_STYLE),
                dbc.RadioItems(
                    id='year-scope',
                    options=[{'label': 'All years', 'value': SCOPE_ALL},
                             {'label': 'Single year', 'value': SCOPE_SINGLE}],
                    inline=True,
                ),
            ], width=3),
            dbc.Col([
                html.Label("Select Year", style=LABEL_STYLE),
                dcc.Dropdown(id='year-dropdown', options=[{'label': str(y), 'value': y} for y in years],
                             clearable=False),
            ], width=2),
            dbc.Col([
                html.Label("Map year", style=LABEL_STYLE),
                dcc.Dropdown(
                    id='map-year-dropdown',
                    options=[{'label': 'Latest available', 'value': LATEST}]
                    + [{'label': str(y), 'value': y} for y in reversed(years)],
                    clearable=False,
                ),
            ], width=3),
            dbc.Col([
                html.Label("Search countries", style=LABEL_STYLE),
                dcc.Input(id='country-search', type='text', placeholder='e.g. chi',
                          debounce=0.3, className='form-control'),
            ], width=4),
        ], style={'marginBottom': '20px'}),

        dbc.Tabs(
            id='panel-tabs',
            children=[dbc.Tab(label=PANEL_TITLES[p], tab_id=p) for p in PANELS],
        ),

        html.Div([
            html.Div(id=f'{panel}-panel', children=[
                html.H5(id=f'{panel}-title', style={'marginTop': '10px', 'marginBottom': '10px'}),
                _graph(panel, view),
            ] + ([
                html.Label("Year range", style=LABEL_STYLE),
                dcc.RangeSlider(
                    id='merged-brush',
                    min=min_year,
                    max=max_year,
                    step=1,
                    marks={y: str(y) for y in range(min_year, max_year + 1, step)},
                    tooltip={'placement': 'bottom', 'always_visible': False},
                ),
            ] if panel == PANEL_MERGED else []))
            for panel in PANELS
        ], style={'padding': '10px'}),
    ], fluid=True)


def _map_view_from_relayout(relayout):
    if not relayout:
        return None
    lon = relayout.get('geo.center.lon')
    lat = relayout.get('geo.center.lat')
    scale = relayout.get('geo.projection.scale')
    if lon is None or lat is None or scale is None:
        return None
    return [lon, lat, scale]


def patch_for_trigger(trigger, value, years):
    """Selection patch for a control event, or None when the event changes nothing."""
    if trigger in CONTROL_FIELDS:
        return {CONTROL_FIELDS[trigger]: value}
    if trigger in BRUSH_GRAPHS:
        return {'brush_selection': brush_from_selection(value, years)}
    if trigger == 'merged-brush':
        if not value or not years or (value[0] <= years[0] and value[-1] >= years[-1]):
            return {'brush_selection': None}
        return {'brush_selection': [value[0], value[-1]]}
    if trigger == 'map-graph':
        view = _map_view_from_relayout(value)
        return {'map_view': view} if view is not None else None
    return None


def next_selection(trigger, value, search, stored, years):
    """The one place a control event turns into a new selection."""
    if trigger in (None, 'url'):
        return build_initial_selections(years, search)
    if trigger == 'reset-button':
        return build_initial_selections(years, force_defaults=True)

    patch = patch_for_trigger(trigger, value, years)
    if patch is None:
        return None
    if stored:
        state = SelectionState.from_dict(stored, years)
    else:
        state = build_initial_selections(years, search)
    return apply_update(state, patch, years)


def control_values(state, years):
    """Values written back to the controls so they always mirror the selection."""
    year = resolve_year(state.year, years) if years else None
    if state.brush_selection is not None:
        brush = list(state.brush_selection)
    else:
        brush = [years[0], years[-1]] if years else [0, 0]
    return (
        state.left_measure,
        state.right_measure,
        state.map_measure,
        state.year_scope,
        year,
        state.year_scope != SCOPE_SINGLE,
        state.map_year,
        state.country_query,
        state.active_panel,
        brush,
        state.year_scope != SCOPE_ALL,
    )


def create_app(table, features=None, settings=None):
    """Build the Dash app around an already reconciled table."""
    view = settings.view if settings is not None else ViewConfig()
    years = known_years(table)

    app = dash.Dash(__name__, external_stylesheets=[dbc.themes.BOOTSTRAP], title=APP_TITLE)
    app.layout = build_layout(years, view)

    trigger_inputs = {
        'url': 'search',
        'reset-button': 'n_clicks',
        'left-measure': 'value',
        'right-measure': 'value',
        'map-measure': 'value',
        'year-scope': 'value',
        'year-dropdown': 'value',
        'map-year-dropdown': 'value',
        'country-search': 'value',
        'panel-tabs': 'active_tab',
        'income-graph': 'selectedData',
        'gdp-graph': 'selectedData',
        'merged-brush': 'value',
        'map-graph': 'relayoutData',
    }

    # SELECTION CALLBACK
    @app.callback(
        Output('selection-state', 'data'),
        Output('query-string', 'data'),
        Output('left-measure', 'value'),
        Output('right-measure', 'value'),
        Output('map-measure', 'value'),
        Output('year-scope', 'value'),
        Output('year-dropdown', 'value'),
        Output('year-dropdown', 'disabled'),
        Output('map-year-dropdown', 'value'),
        Output('country-search', 'value'),
        Output('panel-tabs', 'active_tab'),
        Output('merged-brush', 'value'),
        Output('merged-brush', 'disabled'),
        *[Input(cid, prop) for cid, prop in trigger_inputs.items()],
        State('selection-state', 'data'),
    )
    def update_selection(*args):
        """Apply the triggering control's change and mirror it everywhere."""
        values = dict(zip(trigger_inputs, args[:len(trigger_inputs)]))
        stored = args[len(trigger_inputs)]
        trigger = ctx.triggered_id

        state = next_selection(trigger, values.get(trigger), values['url'], stored, years)
        if state is None:
            raise PreventUpdate
        logger.debug("Selection updated by %s: %s", trigger, state)
        return (state.to_dict(), encode(state)) + control_values(state, years)

    app.clientside_callback(
        REPLACE_URL_JS,
        Output('url-sync', 'data'),
        Input('query-string', 'data'),
    )

    # RENDER CALLBACK
    @app.callback(
        [Output(f'{p}-graph', 'figure') for p in PANELS]
        + [Output(f'{p}-title', 'children') for p in PANELS]
        + [Output(f'{p}-panel', 'style') for p in PANELS],
        Input('selection-state', 'data'),
    )
    def render_panels(stored):
        """Redraw the active panel for the current selection."""
        if not stored:
            raise PreventUpdate
        state = SelectionState.from_dict(stored, years)
        context = DashboardContext.build(
            table, state,
            features=features,
            point_budget=view.point_budget,
            chart_height=view.chart_height,
        )
        rendered = render_dashboard(context, targets=(state.active_panel,))

        figures = [rendered[p].figure if p in rendered else no_update for p in PANELS]
        titles = [rendered[p].title if p in rendered else no_update for p in PANELS]
        styles = [{'display': 'block' if p == state.active_panel else 'none'} for p in PANELS]
        return figures + titles + styles

    return app
