"""
Unit tests for inequality_dashboard/view_filter.py

Country/year/brush/measure filtering, downsampling, map value resolution and
the code-then-name geometry join.
"""
import pandas as pd
import pytest

from inequality_dashboard.selection import SelectionState
from inequality_dashboard.view_filter import (
    downsample,
    filtered_rows,
    join_features,
    map_values,
    panel_measures,
)


def _entities(rows):
    return sorted(set(rows['entity']))


# ── country filter ────────────────────────────────────────────────────────────

def test_country_query_is_case_insensitive_substring():
    table = pd.DataFrame({
        'entity': ['China', 'Chile', 'France'],
        'code': ['CHN', 'CHL', 'FRA'],
        'year': [2000, 2000, 2000],
        'top1_share': [1.0, 2.0, 3.0],
        'gdp_per_capita': [1.0, 2.0, 3.0],
        'gdp_growth': [None, None, None],
        'top1_share_change': [None, None, None],
    })
    rows = filtered_rows(table, SelectionState(country_query='chi', active_panel='income'), 'income')
    assert _entities(rows) == ['Chile', 'China']

    rows = filtered_rows(table, SelectionState(country_query='CHI', active_panel='income'), 'income')
    assert _entities(rows) == ['Chile', 'China']


def test_country_query_is_literal(table):
    rows = filtered_rows(table, SelectionState(country_query='.*', active_panel='income'), 'income')
    assert rows.empty


def test_empty_query_passes_everything(table):
    rows = filtered_rows(table, SelectionState(active_panel='income'), 'income')
    assert _entities(rows) == ['Chile', 'China', 'France']


# ── scope and brush ───────────────────────────────────────────────────────────

def test_single_year_scope(table):
    state = SelectionState(year_scope='single', year=1990, active_panel='income')
    rows = filtered_rows(table, state, 'income')
    assert set(rows['year']) == {1990}


def test_brush_applies_to_active_panel_only(table):
    state = SelectionState(active_panel='income', brush_selection=(1990, 2000))
    assert set(filtered_rows(table, state, 'income')['year']) == {1990, 2000}
    assert 1980 in set(filtered_rows(table, state, 'gdp')['year'])


def test_brush_links_panels_when_requested(table):
    state = SelectionState(active_panel='income', brush_selection=(1990, 2000))
    rows = filtered_rows(table, state, 'gdp', active_panel_only=False)
    assert set(rows['year']) == {1990, 2000}


def test_brush_ignored_in_single_scope(table):
    state = SelectionState(year_scope='single', year=1980, active_panel='income', brush_selection=(1990, 2000))
    assert set(filtered_rows(table, state, 'income')['year']) == {1980}


# ── measure presence ──────────────────────────────────────────────────────────

def test_income_panel_drops_missing_share(table):
    rows = filtered_rows(table, SelectionState(active_panel='income'), 'income')
    assert rows['top1_share'].notna().all()
    assert len(rows) == 7


def test_merged_panel_requires_both_measures(table):
    rows = filtered_rows(table, SelectionState(), 'merged')
    assert rows['top1_share'].notna().all()
    assert rows['gdp_per_capita'].notna().all()
    assert list(zip(rows['entity'], rows['year'])) == [
        ('China', 1980), ('Chile', 1990), ('China', 1990), ('Chile', 2000), ('France', 2000),
    ]


def test_derived_measure_panel(table):
    state = SelectionState(active_panel='gdp', right_measure='gdp_growth')
    rows = filtered_rows(table, state, 'gdp')
    assert list(zip(rows['entity'], rows['year'])) == [('China', 1990), ('Chile', 2000)]


def test_empty_result_is_not_an_error(table):
    rows = filtered_rows(table, SelectionState(country_query='zzz'), 'merged')
    assert rows.empty


def test_map_panel_rejected(table):
    with pytest.raises(ValueError):
        filtered_rows(table, SelectionState(), 'map')


def test_panel_measures():
    state = SelectionState(left_measure='gdp_growth', right_measure='gdp_growth')
    assert panel_measures(state, 'merged') == ['gdp_growth']
    assert panel_measures(state, 'map') == ['gdp_per_capita']


# ── downsampling ──────────────────────────────────────────────────────────────

def test_downsample_within_cap_is_identity():
    rows = list(range(10))
    assert downsample(rows, 10) == rows


def test_downsample_is_deterministic_and_bounded():
    rows = list(range(1001))
    first = downsample(rows, 100)
    assert first == downsample(rows, 100)
    assert len(first) <= 100
    assert first[:3] == [0, 11, 22]


def test_downsample_frame_keeps_table_order(table):
    sampled = downsample(table, 3)
    assert len(sampled) == 3
    assert list(sampled.index) == [0, 3, 6]


def test_filtered_rows_respects_cap(table):
    rows = filtered_rows(table, SelectionState(active_panel='income'), 'income', cap=2)
    assert len(rows) <= 2


# ── map values ────────────────────────────────────────────────────────────────

def test_map_latest_value_per_entity(table):
    values = map_values(table, SelectionState(map_measure='gdp_per_capita'))
    assert list(zip(values['entity'], values['year'], values['value'])) == [
        ('Chile', 2000, 5000.0), ('China', 1990, 900.0), ('France', 2000, 30000.0),
    ]


def test_map_value_at_year(table):
    values = map_values(table, SelectionState(map_measure='top1_share', map_year=1980))
    assert list(values['entity']) == ['China', 'France']


def test_map_ignores_brush_but_not_query(table):
    state = SelectionState(brush_selection=(1980, 1980), country_query='fr')
    values = map_values(table, state)
    assert list(values['entity']) == ['France']
    assert list(values['year']) == [2000]


def test_join_by_code_then_name(table, features):
    values = map_values(table, SelectionState())
    augmented, joined = join_features(features, values)

    assert [f['id'] for f in augmented] == ['CHN', 'chile', 'FRA', 'ATL']
    by_key = dict(zip(joined['feature_key'], joined['entity']))
    # France joins on code despite a different display name; Chile on name
    assert by_key == {'CHN': 'China', 'chile': 'Chile', 'FRA': 'France'}

    atlantis = augmented[3]['properties']
    assert atlantis['value'] is None
    assert atlantis['year'] is None
    assert augmented[0]['properties']['value'] == 900.0


def test_join_does_not_mutate_features(table, features):
    join_features(features, map_values(table, SelectionState()))
    assert 'value' not in features[0]['properties']
    assert 'id' not in features[0]
