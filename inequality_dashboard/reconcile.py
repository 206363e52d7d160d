"""Merge the income-share and GDP series into one row per (entity, year)."""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

ROW_COLUMNS = [
    'entity',
    'code',
    'year',
    'top1_share',
    'gdp_per_capita',
    'gdp_growth',
    'top1_share_change',
]


def _normalise_code(value):
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip().upper()
    return text or None


def _prepare(rows, measure_col):
    """Coerce one source into entity/code/year/<measure_col>, one row per key."""
    frame = rows.copy() if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    for col in ('entity', 'year', 'value'):
        if col not in frame.columns:
            frame[col] = pd.Series(dtype=object)
    if 'code' not in frame.columns:
        frame['code'] = None

    frame = frame[['entity', 'code', 'year', 'value']].copy()
    frame['year'] = pd.to_numeric(frame['year'], errors='coerce')
    frame = frame[np.isfinite(frame['year'].astype(float))]
    frame = frame[frame['entity'].notna()]
    frame['year'] = frame['year'].astype(int)
    frame['entity'] = frame['entity'].astype(str)

    values = pd.to_numeric(frame['value'], errors='coerce').astype(float)
    frame['value'] = values.where(np.isfinite(values))
    frame['code'] = frame['code'].map(_normalise_code)

    frame = frame.drop_duplicates(subset=['entity', 'year'], keep='last')
    return frame.rename(columns={'value': measure_col})


def reconcile(income_rows, gdp_rows):
    """Build the MeasureRow table from the two sources.

    Both inputs hold ``entity``, ``year`` and ``value`` (frames or iterables of
    mappings), optionally ``code``. The result has one row per (entity, year)
    present in either source, ordered by year then entity, with the derived
    year-over-year columns filled in per entity. Gaps stay NaN.
    """
    income = _prepare(income_rows, 'top1_share')
    gdp = _prepare(gdp_rows, 'gdp_per_capita')

    table = income.merge(gdp, on=['entity', 'year'], how='outer', suffixes=('_income', '_gdp'))
    table['code'] = table['code_gdp'].combine_first(table['code_income'])
    table = table.drop(columns=['code_income', 'code_gdp'])

    # Backfill codes across years of the same entity
    entity_code = table.groupby('entity')['code'].transform('first')
    table['code'] = table['code'].combine_first(entity_code)

    table = table.sort_values(['entity', 'year'], kind='mergesort')
    by_entity = table.groupby('entity', sort=False)

    prev_gdp = by_entity['gdp_per_capita'].shift(1)
    growth = (table['gdp_per_capita'] - prev_gdp) / prev_gdp * 100
    table['gdp_growth'] = growth.where(prev_gdp != 0)

    prev_share = by_entity['top1_share'].shift(1)
    table['top1_share_change'] = table['top1_share'] - prev_share

    table = table.sort_values(['year', 'entity'], kind='mergesort').reset_index(drop=True)
    table['year'] = table['year'].astype(int)
    table['code'] = table['code'].astype(object).where(table['code'].notna(), None)
    for col in ('top1_share', 'gdp_per_capita', 'gdp_growth', 'top1_share_change'):
        table[col] = table[col].astype(float)

    logger.info(
        "Reconciled %d rows for %d entities across %d years",
        len(table), table['entity'].nunique(), table['year'].nunique(),
    )
    return table[ROW_COLUMNS]


def known_years(table):
    """Sorted distinct years present in the table."""
    if table.empty:
        return []
    return sorted(int(y) for y in table['year'].unique())
