"""
Tests for inequality_dashboard/session.py

Timers are replaced by a fake factory so debouncing is checked without
sleeping.
"""
import pytest

from inequality_dashboard.measures import LATEST
from inequality_dashboard.selection import SelectionState
from inequality_dashboard.session import DashboardSession, Debouncer


class FakeTimer:
    created = []

    def __init__(self, delay, fn, args=()):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn(*self.args)


@pytest.fixture(autouse=True)
def reset_fake_timers():
    FakeTimer.created.clear()
    yield
    FakeTimer.created.clear()


@pytest.fixture
def recorder():
    calls = {'urls': [], 'renders': []}
    return calls


@pytest.fixture
def session(table, recorder):
    return DashboardSession(
        table,
        query='?tab=income&q=ch',
        on_url=recorder['urls'].append,
        on_render=recorder['renders'].append,
        targets=('income',),
        timer_factory=FakeTimer,
    )


# ── update pipeline ───────────────────────────────────────────────────────────

def test_initial_state_from_query(session):
    assert session.state.active_panel == 'income'
    assert session.state.country_query == 'ch'
    assert session.years == [1980, 1990, 2000]


def test_update_encodes_and_renders_once(session, recorder):
    session.update({'year_scope': 'single'})
    assert session.state.year == 2000
    assert recorder['urls'] == [session.query]
    assert len(recorder['renders']) == 1
    assert set(recorder['renders'][0]) == {'income'}


def test_reset_returns_defaults(session, recorder):
    session.update({'left_measure': 'gdp_growth'})
    session.reset()
    assert session.state == SelectionState()
    assert len(recorder['urls']) == 2


# ── debouncing ────────────────────────────────────────────────────────────────

def test_search_is_debounced(session, recorder):
    session.search('c')
    session.search('ch')
    session.search('chi')

    first, second, third = FakeTimer.created
    assert first.cancelled and second.cancelled and not third.cancelled
    assert recorder['urls'] == []

    for timer in FakeTimer.created:
        timer.fire()
    assert session.state.country_query == 'chi'
    assert len(recorder['urls']) == 1


def test_brush_moves_coalesce(session):
    session.brush_moved({'range': {'x': [1981, 1985]}})
    session.brush_moved({'range': {'x': [1981, 1995]}})
    FakeTimer.created[-1].fire()
    assert session.state.brush_selection == (1980, 2000)


def test_brush_cleared_by_empty_selection(session):
    session.update({'brush_selection': [1980, 1990]})
    session.brush_moved(None)
    FakeTimer.created[-1].fire()
    assert session.state.brush_selection is None


def test_triggers_debounce_independently(session):
    session.search('fr')
    session.brush_moved({'range': {'x': [1990, 2000]}})
    search_timer, brush_timer = FakeTimer.created
    assert not search_timer.cancelled
    assert not brush_timer.cancelled


def test_reset_cancels_pending_updates(session):
    session.search('fr')
    session.reset()
    assert FakeTimer.created[0].cancelled
    FakeTimer.created[0].fire()
    assert session.state.country_query == ''


def test_debouncer_forgets_fired_timer():
    debouncer = Debouncer(FakeTimer)
    seen = []
    debouncer.call('x', 0.01, seen.append, 1)
    assert debouncer.pending('x') is FakeTimer.created[0]
    FakeTimer.created[0].fire()
    assert seen == [1]
    assert debouncer.pending('x') is None


def test_running_timer_keeps_newer_timer_cancellable():
    debouncer = Debouncer(FakeTimer)
    seen = []
    debouncer.call('q', 0.01, seen.append, 'a')
    debouncer.call('q', 0.01, seen.append, 'b')
    first, second = FakeTimer.created

    # first was already running when second replaced it
    first.fn(*first.args)
    assert seen == ['a']
    assert debouncer.pending('q') is second

    debouncer.cancel_all()
    assert second.cancelled
    second.fire()
    assert seen == ['a']


def test_reset_cancels_update_queued_behind_running_one(session):
    session.search('fr')
    session.search('chi')
    first, second = FakeTimer.created
    first.fn(*first.args)
    session.reset()
    second.fire()
    assert session.state == SelectionState()


def test_default_delay(session):
    session.search('a')
    assert FakeTimer.created[0].delay == session.debounce_seconds


def test_state_year_stays_latest_in_all_scope(session):
    session.update({'year': 1990})
    assert session.state.year == LATEST


def test_resize_redraws_without_touching_url(session, recorder):
    session.resized(300)
    session.resized(360)
    FakeTimer.created[-1].fire()
    assert session.chart_height == 360
    assert recorder['urls'] == []
    assert len(recorder['renders']) == 1
    assert recorder['renders'][0]['income'].figure.layout.height == 360
