"""Headless state container: one selection, one update pipeline.

The session owns the reconciled table, the current selection and the pending
debounce timers. Every change goes through :meth:`DashboardSession.update`,
which applies the patch, replaces the URL once and re-renders once.
"""
from __future__ import annotations

import logging
import threading

from .measures import PANELS
from .reconcile import known_years
from .render import DashboardContext, render_dashboard
from .selection import apply_update, brush_from_selection, build_initial_selections
from .url_codec import encode
from .view_filter import POINT_BUDGET

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.05


class Debouncer:
    """One pending timer per trigger; a new call cancels the previous one."""

    def __init__(self, timer_factory=threading.Timer):
        self._timer_factory = timer_factory
        self._pending = {}
        self._lock = threading.Lock()

    def call(self, trigger, delay, fn, *args):
        with self._lock:
            previous = self._pending.get(trigger)
            if previous is not None:
                previous.cancel()
            # filled in once the timer exists so _fire knows which timer it runs for
            slot = []
            timer = self._timer_factory(delay, self._fire, args=(trigger, slot, fn) + args)
            slot.append(timer)
            self._pending[trigger] = timer
        timer.start()
        return timer

    def _fire(self, trigger, slot, fn, *args):
        with self._lock:
            # a newer timer may already own this trigger; leave it cancellable
            if slot and self._pending.get(trigger) is slot[0]:
                del self._pending[trigger]
        fn(*args)

    def pending(self, trigger):
        return self._pending.get(trigger)

    def cancel_all(self):
        with self._lock:
            for timer in self._pending.values():
                timer.cancel()
            self._pending.clear()


class DashboardSession:
    """Drives the engine outside Dash (exports, scripted views, tests).

    ``on_url`` receives each encoded query string (history replace) and
    ``on_render`` the rendered panels; both are called exactly once per
    applied update.
    """

    def __init__(self, table, features=None, query=None, on_url=None, on_render=None,
                 targets=PANELS, point_budget=POINT_BUDGET, chart_height=420,
                 debounce_seconds=DEBOUNCE_SECONDS, timer_factory=threading.Timer):
        self.table = table
        self.features = features
        self.years = known_years(table)
        self.targets = targets
        self.point_budget = point_budget
        self.chart_height = chart_height
        self.debounce_seconds = debounce_seconds
        self._on_url = on_url
        self._on_render = on_render
        self._debouncer = Debouncer(timer_factory)
        self._lock = threading.RLock()
        self.state = build_initial_selections(self.years, query)

    def context(self):
        return DashboardContext.build(
            self.table,
            self.state,
            features=self.features,
            point_budget=self.point_budget,
            chart_height=self.chart_height,
        )

    @property
    def query(self):
        return encode(self.state)

    def render(self):
        return render_dashboard(self.context(), self.targets)

    def _commit(self, new_state):
        self.state = new_state
        if self._on_url is not None:
            self._on_url(encode(new_state))
        if self._on_render is not None:
            self._on_render(self.render())
        return new_state

    def update(self, patch):
        with self._lock:
            return self._commit(apply_update(self.state, patch, self.years))

    def reset(self):
        with self._lock:
            self._debouncer.cancel_all()
            logger.debug("Resetting selection to defaults")
            return self._commit(build_initial_selections(self.years, force_defaults=True))

    def debounce(self, trigger, patch, delay=None):
        """Schedule ``update(patch)``; a later call for ``trigger`` supersedes it."""
        delay = self.debounce_seconds if delay is None else delay
        return self._debouncer.call(trigger, delay, self.update, patch)

    def search(self, text):
        return self.debounce('country_query', {'country_query': text})

    def brush_moved(self, selected_data):
        brush = brush_from_selection(selected_data, self.years)
        return self.debounce('brush', {'brush_selection': brush})

    def _redraw(self, chart_height):
        with self._lock:
            self.chart_height = chart_height
            if self._on_render is not None:
                self._on_render(self.render())

    def resized(self, chart_height):
        """Re-render at a new chart height once resizing settles; the URL is untouched."""
        return self._debouncer.call('resize', self.debounce_seconds, self._redraw, chart_height)

    def close(self):
        self._debouncer.cancel_all()
