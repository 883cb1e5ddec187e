"""Split the stoppage log into production periods.

A production period runs from one lot marker (a stoppage on the
``Omposting/Korigering`` machine carrying a post number) to the next marker,
or to the end of the day's production window.  When no marker has been
recorded yet today the lot of yesterday's last marker continues.

All functions here are pure: the current time is always passed in, and the
results are recomputed from the full event log on every call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Iterable, Sequence

from .models import DowntimeEvent, minutes_between, to_millis

PRODUCTION_START = time(6, 0)
WEEKDAY_PRODUCTION_END = time(23, 20)
FRIDAY_PRODUCTION_END = time(14, 0)

_FRIDAY = 4
_SUNDAY = 6


def round_half_up(value: float) -> int:
    """Round .5 upwards like JavaScript's ``Math.round``; ``round`` rounds to even."""
    return math.floor(value + 0.5)


def efficiency(duration_minutes: int, downtime_minutes: int) -> int:
    """Percentage of ``duration_minutes`` not lost to downtime.

    A period without any elapsed time is reported as fully efficient.
    """

    if duration_minutes <= 0:
        return 100
    return round_half_up((duration_minutes - downtime_minutes) / duration_minutes * 100)


@dataclass(frozen=True)
class ProductionPeriod:
    post_number: str
    start_time: int
    end_time: int
    duration_minutes: int
    downtimes: tuple[DowntimeEvent, ...]
    total_downtime_minutes: int
    total_pause_minutes: int
    continued: bool = False
    in_progress: bool = False

    @property
    def efficiency(self) -> int:
        return period_efficiency(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_number": self.post_number,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "downtimes": [event.to_dict() for event in self.downtimes],
            "downtime_count": len(self.downtimes),
            "total_downtime_minutes": self.total_downtime_minutes,
            "total_pause_minutes": self.total_pause_minutes,
            "continued": self.continued,
            "in_progress": self.in_progress,
            "efficiency": self.efficiency,
        }


@dataclass(frozen=True)
class PostListing:
    """One row group of the by-post report."""

    label: str
    post_number: str | None
    start_time: int | None
    end_time: int | None
    duration_minutes: int | None
    downtimes: tuple[DowntimeEvent, ...]
    total_minutes: int

    @property
    def in_progress(self) -> bool:
        return self.start_time is not None and self.end_time is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "post_number": self.post_number,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "downtimes": [event.to_dict() for event in self.downtimes],
            "total_minutes": self.total_minutes,
            "in_progress": self.in_progress,
        }


def period_efficiency(period: ProductionPeriod) -> int:
    return efficiency(period.duration_minutes, period.total_downtime_minutes)


def summarize_periods(periods: Sequence[ProductionPeriod]) -> dict[str, int]:
    """Return the totals row shown under the production overview."""

    duration = sum(period.duration_minutes for period in periods)
    downtime = sum(period.total_downtime_minutes for period in periods)
    return {
        "duration_minutes": duration,
        "total_downtime_minutes": downtime,
        "total_pause_minutes": sum(period.total_pause_minutes for period in periods),
        "downtime_count": sum(len(period.downtimes) for period in periods),
        "efficiency": efficiency(duration, downtime),
    }


def local_datetime(millis: int, tz: tzinfo = timezone.utc) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=tz)


def event_day(event: DowntimeEvent, tz: tzinfo = timezone.utc) -> date:
    return local_datetime(event.start_time, tz).date()


def events_on(
    events: Iterable[DowntimeEvent], day: date, tz: tzinfo = timezone.utc
) -> list[DowntimeEvent]:
    return [event for event in events if event_day(event, tz) == day]


def production_window(day: date, tz: tzinfo = timezone.utc) -> tuple[int, int] | None:
    """Return the ``(start, end)`` epoch-millisecond window for ``day``.

    Sundays have no production and return ``None``.
    """

    weekday = day.weekday()
    if weekday == _SUNDAY:
        return None
    end_of_day = FRIDAY_PRODUCTION_END if weekday == _FRIDAY else WEEKDAY_PRODUCTION_END
    start = datetime.combine(day, PRODUCTION_START, tzinfo=tz)
    end = datetime.combine(day, end_of_day, tzinfo=tz)
    return to_millis(start), to_millis(end)


def _markers_on(
    events: Iterable[DowntimeEvent], day: date, tz: tzinfo
) -> list[DowntimeEvent]:
    markers = [event for event in events_on(events, day, tz) if event.is_marker]
    return sorted(markers, key=lambda event: event.start_time)


def _last_marker_on(
    events: Iterable[DowntimeEvent], day: date, tz: tzinfo
) -> DowntimeEvent | None:
    markers = _markers_on(events, day, tz)
    return markers[-1] if markers else None


def current_post_number(
    events: Sequence[DowntimeEvent], now: Any, tz: tzinfo = timezone.utc
) -> str | None:
    """Return the post number in force at ``now``.

    That is the latest marker of today, or failing that of yesterday.
    """

    today = local_datetime(to_millis(now), tz).date()
    for day in (today, today - timedelta(days=1)):
        marker = _last_marker_on(events, day, tz)
        if marker is not None:
            return marker.post_number
    return None


def _build_period(
    post_number: str,
    start: int,
    end: int,
    downtimes: list[DowntimeEvent],
    *,
    continued: bool,
    in_progress: bool = False,
) -> ProductionPeriod:
    pauses = [event for event in downtimes if event.is_pause]
    regular = [event for event in downtimes if not event.is_pause]
    return ProductionPeriod(
        post_number=post_number,
        start_time=start,
        end_time=end,
        duration_minutes=minutes_between(start, end),
        downtimes=tuple(downtimes),
        total_downtime_minutes=sum(event.duration_minutes for event in regular),
        total_pause_minutes=sum(event.duration_minutes for event in pauses),
        continued=continued,
        in_progress=in_progress,
    )


def compute_production_periods(
    events: Sequence[DowntimeEvent],
    now: Any,
    tz: tzinfo = timezone.utc,
    day: date | None = None,
) -> list[ProductionPeriod]:
    """Return the production periods of ``day`` (default: the day of ``now``).

    Args:
        events: The complete stoppage log.  Earlier days are needed to carry
            yesterday's post number over.
        now: Current time as a ``datetime`` or epoch milliseconds.
        tz: Timezone in which calendar days and the production window are
            evaluated.
        day: Day to report on.  Past days come out fully closed because
            ``now`` lies after their window.

    An empty result means no post has been assigned yet, not that there was
    no downtime.
    """

    now_ms = to_millis(now)
    if day is None:
        day = local_datetime(now_ms, tz).date()

    window = production_window(day, tz)
    if window is None:
        return []
    window_start, window_end = window

    todays = sorted(events_on(events, day, tz), key=lambda event: event.start_time)
    markers = [event for event in todays if event.is_marker]
    regular = [event for event in todays if not event.on_marker_machine]
    yesterday_marker = _last_marker_on(events, day - timedelta(days=1), tz)

    in_progress = now_ms < window_end

    if not markers:
        if yesterday_marker is None:
            return []
        # An inherited post covers the whole window, not just the time so far.
        return [
            _build_period(
                yesterday_marker.post_number,
                window_start,
                window_end,
                regular,
                continued=True,
                in_progress=in_progress,
            )
        ]

    periods: list[ProductionPeriod] = []
    first = markers[0]
    if yesterday_marker is not None:
        periods.append(
            _build_period(
                yesterday_marker.post_number,
                window_start,
                max(window_start, first.start_time),
                [event for event in regular if event.start_time < first.start_time],
                continued=True,
            )
        )

    for index, marker in enumerate(markers):
        successor = markers[index + 1] if index + 1 < len(markers) else None
        if successor is not None:
            end = successor.start_time
            contained = [
                event
                for event in regular
                if marker.start_time <= event.start_time < successor.start_time
            ]
        else:
            # The last marker period stays open until the window closes.
            end = max(marker.start_time, min(now_ms, window_end))
            contained = [event for event in regular if event.start_time >= marker.start_time]
        periods.append(
            _build_period(
                marker.post_number,
                marker.start_time,
                end,
                contained,
                continued=False,
                in_progress=successor is None and in_progress,
            )
        )
    return periods


def compute_post_listing(
    events: Sequence[DowntimeEvent],
    now: Any,
    tz: tzinfo = timezone.utc,
    day: date | None = None,
) -> list[PostListing]:
    """Return the by-post listing of ``day``.

    Unlike :func:`compute_production_periods` every post lists its own marker
    as the first row and counts the marker's duration in its total.  Stoppages
    before the first marker get a separate "Before post" group, and a day
    without markers is one "Start of day" group.  The last post runs until
    ``now``.
    """

    now_ms = to_millis(now)
    if day is None:
        day = local_datetime(now_ms, tz).date()

    todays = sorted(events_on(events, day, tz), key=lambda event: event.start_time)
    markers = [event for event in todays if event.is_marker]

    if not markers:
        return [
            PostListing(
                label="Start of day",
                post_number=None,
                start_time=None,
                end_time=None,
                duration_minutes=None,
                downtimes=tuple(todays),
                total_minutes=sum(event.duration_minutes for event in todays),
            )
        ]

    listings: list[PostListing] = []
    first = markers[0]
    before_first = [
        event
        for event in todays
        if event.start_time < first.start_time and not event.on_marker_machine
    ]
    if before_first:
        listings.append(
            PostListing(
                label=f"Before post {first.post_number}",
                post_number=None,
                start_time=None,
                end_time=first.start_time,
                duration_minutes=None,
                downtimes=tuple(before_first),
                total_minutes=sum(event.duration_minutes for event in before_first),
            )
        )

    for index, marker in enumerate(markers):
        successor = markers[index + 1] if index + 1 < len(markers) else None
        rows = [marker]
        for event in todays:
            if event.on_marker_machine or event.start_time < marker.start_time:
                continue
            if successor is not None and event.start_time >= successor.start_time:
                continue
            rows.append(event)

        end = successor.start_time if successor is not None else None
        listings.append(
            PostListing(
                label=f"Post {marker.post_number}",
                post_number=marker.post_number,
                start_time=marker.start_time,
                end_time=end,
                duration_minutes=max(
                    0, minutes_between(marker.start_time, end if end is not None else now_ms)
                ),
                downtimes=tuple(rows),
                total_minutes=sum(event.duration_minutes for event in rows),
            )
        )
    return listings
