"""Linked income-inequality and GDP dashboard."""

from .loading import DataLoadError, load_sources
from .reconcile import known_years, reconcile
from .selection import SelectionState, apply_update, build_initial_selections
from .url_codec import decode, encode
from .view_filter import filtered_rows, map_values

__version__ = '0.1.0'
