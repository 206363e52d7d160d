"""Source loading: the two CSV series and the country geometry."""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

NAME_PROPERTIES = ('name', 'NAME', 'ADMIN', 'admin', 'name_long', 'country')
CODE_PROPERTIES = ('code', 'CODE', 'iso_a3', 'ISO_A3', 'adm0_a3', 'ADM0_A3', 'iso3')


class DataLoadError(RuntimeError):
    """A source could not be read; the dashboard must not render."""


def load_series(path, value_column, name='series'):
    """Read an ``Entity, [Code,] Year, <value>`` CSV into entity/code/year/value.

    Years and values are coerced to numbers; rows whose year or value is not
    finite are dropped.
    """
    path = Path(path)
    if not path.exists():
        raise DataLoadError(f"{name} file not found: {path}")
    try:
        raw = pd.read_csv(path)
    except (OSError, ValueError) as exc:
        raise DataLoadError(f"Could not parse {name} file {path}: {exc}") from exc

    missing = [c for c in ('Entity', 'Year', value_column) if c not in raw.columns]
    if missing:
        raise DataLoadError(f"{name} file {path} is missing columns: {missing}")

    out = pd.DataFrame({
        'entity': raw['Entity'].astype(str).str.strip(),
        'code': raw['Code'] if 'Code' in raw.columns else None,
        'year': pd.to_numeric(raw['Year'], errors='coerce'),
        'value': pd.to_numeric(raw[value_column], errors='coerce'),
    })
    finite = np.isfinite(out['year'].astype(float)) & np.isfinite(out['value'].astype(float))
    dropped = int((~finite).sum())
    out = out[finite].copy()
    out['year'] = out['year'].astype(int)
    out['value'] = out['value'].astype(float)

    logger.info("Loaded %s: %d rows from %s (%d dropped as non-numeric)", name, len(out), path.name, dropped)
    return out.reset_index(drop=True)


def _pick(props, candidates):
    for key in candidates:
        value = props.get(key)
        if value not in (None, ''):
            return str(value)
    return None


def _normalise_feature(feature):
    props = dict(feature.get('properties') or {})
    props['name'] = _pick(props, NAME_PROPERTIES)
    code = _pick(props, CODE_PROPERTIES)
    if code is None and isinstance(feature.get('id'), str):
        code = feature['id']
    props['code'] = code.strip().upper() if code else None
    return {'type': 'Feature', 'geometry': feature.get('geometry'), 'properties': props}


def _decode_arcs(topology):
    transform = topology.get('transform')
    arcs = []
    for arc in topology.get('arcs', []):
        if transform:
            sx, sy = transform['scale']
            tx, ty = transform['translate']
            x = y = 0
            points = []
            for position in arc:
                x += position[0]
                y += position[1]
                points.append([x * sx + tx, y * sy + ty])
        else:
            points = [list(position[:2]) for position in arc]
        arcs.append(points)
    return arcs


def _ring(arcs, indices):
    coords = []
    for index in indices:
        points = arcs[index] if index >= 0 else arcs[~index][::-1]
        coords.extend(points[1:] if coords else points)
    return coords


def _topology_geometry(geometry, arcs):
    kind = geometry.get('type')
    if kind == 'Polygon':
        return {'type': 'Polygon', 'coordinates': [_ring(arcs, r) for r in geometry['arcs']]}
    if kind == 'MultiPolygon':
        return {
            'type': 'MultiPolygon',
            'coordinates': [[_ring(arcs, r) for r in polygon] for polygon in geometry['arcs']],
        }
    return None


def topology_features(topology, object_name=None):
    """Expand a TopoJSON topology object into GeoJSON polygon features."""
    objects = topology.get('objects') or {}
    if not objects:
        raise DataLoadError('Topology has no objects')
    if object_name is None:
        object_name = 'collection' if 'collection' in objects else next(iter(objects))
    arcs = _decode_arcs(topology)

    features = []
    stack = [objects[object_name]]
    while stack:
        geometry = stack.pop(0)
        if geometry.get('type') == 'GeometryCollection':
            stack.extend(geometry.get('geometries', []))
            continue
        shape = _topology_geometry(geometry, arcs)
        if shape is None:
            continue
        features.append({
            'type': 'Feature',
            'id': geometry.get('id'),
            'geometry': shape,
            'properties': dict(geometry.get('properties') or {}),
        })
    return features


def load_geo_features(path):
    """Load country polygons from GeoJSON or TopoJSON with name/code properties."""
    path = Path(path)
    if not path.exists():
        raise DataLoadError(f"Geometry file not found: {path}")
    try:
        with path.open('r', encoding='utf-8') as fh:
            payload = json.load(fh)
    except (OSError, ValueError) as exc:
        raise DataLoadError(f"Could not parse geometry file {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise DataLoadError(f"Geometry file {path} does not hold a JSON object")

    kind = payload.get('type')
    if kind not in ('Topology', 'FeatureCollection'):
        raise DataLoadError(f"Unsupported geometry type {kind!r} in {path}")
    try:
        if kind == 'Topology':
            raw_features = topology_features(payload)
        else:
            raw_features = payload.get('features') or []
        features = [_normalise_feature(f) for f in raw_features]
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
        raise DataLoadError(f"Malformed geometry in {path}: {exc!r}") from exc

    features = [f for f in features if f['properties']['name'] or f['properties']['code']]
    logger.info("Loaded %d map features from %s", len(features), path.name)
    return features


def load_sources(settings):
    """Load the income series, GDP series and geometry concurrently.

    Returns ``(income, gdp, features)``; ``features`` is None when no geometry
    file is configured. Any failure aborts the whole load.
    """
    geo_path = settings.geo_path()
    with ThreadPoolExecutor(max_workers=3) as pool:
        income_future = pool.submit(load_series, settings.income_csv(), settings.data.share_column, 'income')
        gdp_future = pool.submit(load_series, settings.gdp_csv(), settings.data.gdp_column, 'gdp')
        geo_future = pool.submit(load_geo_features, geo_path) if geo_path else None

        try:
            income = income_future.result()
            gdp = gdp_future.result()
            features = geo_future.result() if geo_future else None
        except DataLoadError:
            logger.exception("Source loading failed; dashboard will not render")
            raise
    return income, gdp, features
