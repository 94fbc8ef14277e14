"""Delta window resolution.

Each pipeline run processes the half-open interval (start, end] of email
ingestion timestamps: exclusive at start, inclusive at end. Consecutive
runs chain end -> start, so an email ingested exactly at a boundary is
processed once, by the run whose window ends there.

Resolution Order (first applicable wins):
    1. EXPLICIT:  caller gave both start and end -> used verbatim
    2. HOURS:     caller gave window_hours -> start = end - hours
    3. DELTA:     start = max(time_window_end) over stored briefings
    4. FALLBACK:  no prior briefing -> start = end - fallback hours

Explicit overrides always beat the automatic cursor so an operator can
force a re-run; the cursor always beats the fallback.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class WindowMode(str, Enum):
    """How a window was resolved."""

    EXPLICIT = "explicit"
    HOURS = "hours"
    DELTA = "delta"
    FALLBACK = "fallback"


class CursorSource(Protocol):
    """Anything that can report the latest processed window end."""

    def last_window_end(self) -> datetime | None: ...


@dataclass(frozen=True)
class TimeWindow:
    """Resolved processing window (start, end]."""

    start: datetime
    end: datetime
    mode: WindowMode

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    def contains(self, ts: datetime) -> bool:
        """True if ts lies in (start, end]."""
        return self.start < ts <= self.end


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def resolve_window(
    store: CursorSource,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    window_hours: float | None = None,
    fallback_hours: float = 24,
    now: datetime | None = None,
) -> TimeWindow:
    """Compute the window for this run.

    Args:
        store: Cursor source (queried only in delta mode)
        window_start: Explicit start (requires window_end)
        window_end: Explicit end (requires window_start)
        window_hours: Lookback override, ending now
        fallback_hours: Lookback when no prior briefing exists
        now: Current time (defaults to datetime.now(UTC))

    Returns:
        TimeWindow with start < end

    Raises:
        ValueError: Only one explicit bound given, non-positive hours,
            or a window that does not satisfy start < end
    """
    if (window_start is None) != (window_end is None):
        raise ValueError("window_start and window_end must be given together")

    end = ensure_utc(now or datetime.now(timezone.utc))

    if window_start is not None and window_end is not None:
        window = TimeWindow(ensure_utc(window_start), ensure_utc(window_end), WindowMode.EXPLICIT)
    elif window_hours is not None:
        if window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {window_hours}")
        window = TimeWindow(end - timedelta(hours=window_hours), end, WindowMode.HOURS)
    else:
        last_end = store.last_window_end()
        if last_end is not None:
            window = TimeWindow(ensure_utc(last_end), end, WindowMode.DELTA)
        else:
            window = TimeWindow(end - timedelta(hours=fallback_hours), end, WindowMode.FALLBACK)

    if window.start >= window.end:
        raise ValueError(
            f"Empty or inverted window: start={window.start.isoformat()} end={window.end.isoformat()}"
        )

    logger.info(
        "Window resolved | mode=%s start=%s end=%s hours=%.1f",
        window.mode.value, window.start.isoformat(), window.end.isoformat(), window.hours,
    )
    return window
