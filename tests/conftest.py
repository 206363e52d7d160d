"""
Shared pytest fixtures: small income/GDP sources, the reconciled table and a
handful of map features. No network or data files required.
"""
import sys
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from inequality_dashboard.reconcile import known_years, reconcile


@pytest.fixture
def income_rows():
    return pd.DataFrame([
        {'entity': 'China', 'year': 1980, 'value': 6.0},
        {'entity': 'China', 'year': 1990, 'value': 8.0},
        {'entity': 'China', 'year': 2000, 'value': 9.5},
        {'entity': 'Chile', 'year': 1990, 'value': 20.0},
        {'entity': 'Chile', 'year': 2000, 'value': 21.5},
        {'entity': 'France', 'year': 1980, 'value': 8.2},
        {'entity': 'France', 'year': 2000, 'value': 10.0},
    ])


@pytest.fixture
def gdp_rows():
    return pd.DataFrame([
        {'entity': 'China', 'code': 'chn', 'year': 1980, 'value': 300.0},
        {'entity': 'China', 'code': 'CHN', 'year': 1990, 'value': 900.0},
        {'entity': 'Chile', 'code': 'CHL', 'year': 1980, 'value': 0.0},
        {'entity': 'Chile', 'code': 'CHL', 'year': 1990, 'value': 4000.0},
        {'entity': 'Chile', 'code': 'CHL', 'year': 2000, 'value': 5000.0},
        {'entity': 'France', 'code': 'FRA', 'year': 2000, 'value': 30000.0},
    ])


@pytest.fixture
def table(income_rows, gdp_rows):
    return reconcile(income_rows, gdp_rows)


@pytest.fixture
def years(table):
    return known_years(table)


def _square(x, y):
    return {'type': 'Polygon', 'coordinates': [[[x, y], [x + 1, y], [x + 1, y + 1], [x, y + 1], [x, y]]]}


@pytest.fixture
def features():
    return [
        {'type': 'Feature', 'geometry': _square(0, 0), 'properties': {'name': 'China', 'code': 'CHN'}},
        # no code: must fall back to the name
        {'type': 'Feature', 'geometry': _square(2, 0), 'properties': {'name': 'chile', 'code': None}},
        {'type': 'Feature', 'geometry': _square(4, 0), 'properties': {'name': 'Republique Francaise', 'code': 'fra'}},
        {'type': 'Feature', 'geometry': _square(6, 0), 'properties': {'name': 'Atlantis', 'code': 'ATL'}},
    ]
