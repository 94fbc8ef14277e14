from datetime import datetime, timedelta, timezone

import pytest

from window import TimeWindow, WindowMode, resolve_window

NOW = datetime(2026, 10, 2, 8, 0, tzinfo=timezone.utc)


class StubStore:
    def __init__(self, last_end=None):
        self.last_end = last_end
        self.queried = False

    def last_window_end(self):
        self.queried = True
        return self.last_end


def test_explicit_bounds_win_over_hours_and_cursor():
    store = StubStore(last_end=NOW - timedelta(hours=3))
    start = NOW - timedelta(days=3)
    end = NOW - timedelta(days=2)

    window = resolve_window(store, window_start=start, window_end=end, window_hours=5, now=NOW)

    assert (window.start, window.end, window.mode) == (start, end, WindowMode.EXPLICIT)
    assert not store.queried


def test_hours_override_wins_over_cursor():
    store = StubStore(last_end=NOW - timedelta(hours=3))

    window = resolve_window(store, window_hours=48, now=NOW)

    assert window.mode == WindowMode.HOURS
    assert window.start == NOW - timedelta(hours=48)
    assert window.end == NOW


def test_delta_resumes_from_stored_cursor():
    last_end = NOW - timedelta(hours=6)

    window = resolve_window(StubStore(last_end=last_end), now=NOW)

    assert window.mode == WindowMode.DELTA
    assert window.start == last_end
    assert window.end == NOW


def test_fallback_when_no_prior_briefing():
    window = resolve_window(StubStore(), fallback_hours=24, now=NOW)

    assert window.mode == WindowMode.FALLBACK
    assert window.start == NOW - timedelta(hours=24)
    assert window.hours == pytest.approx(24)


def test_naive_timestamps_are_treated_as_utc():
    start = datetime(2026, 10, 1, 0, 0)
    end = datetime(2026, 10, 1, 6, 0)

    window = resolve_window(StubStore(), window_start=start, window_end=end, now=NOW)

    assert window.start.tzinfo is not None
    assert window.start == start.replace(tzinfo=timezone.utc)


@pytest.mark.parametrize("kwargs", [
    {"window_start": NOW - timedelta(hours=1)},
    {"window_end": NOW},
])
def test_lone_explicit_bound_is_rejected(kwargs):
    with pytest.raises(ValueError, match="together"):
        resolve_window(StubStore(), now=NOW, **kwargs)


def test_non_positive_hours_rejected():
    with pytest.raises(ValueError):
        resolve_window(StubStore(), window_hours=0, now=NOW)


def test_inverted_window_rejected():
    with pytest.raises(ValueError, match="inverted"):
        resolve_window(StubStore(), window_start=NOW, window_end=NOW - timedelta(hours=1), now=NOW)


def test_cursor_in_the_future_is_rejected():
    with pytest.raises(ValueError):
        resolve_window(StubStore(last_end=NOW + timedelta(minutes=1)), now=NOW)


def test_window_is_half_open():
    window = TimeWindow(NOW - timedelta(hours=1), NOW, WindowMode.EXPLICIT)

    assert not window.contains(window.start)
    assert window.contains(window.end)
    assert window.contains(window.start + timedelta(microseconds=1))
