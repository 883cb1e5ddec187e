"""CSV exports of the day, week and post reports."""

from __future__ import annotations

import csv
import io
from datetime import timezone, tzinfo
from typing import Iterable, Sequence

from downtime_app.models import DowntimeEvent
from downtime_app.periods import PostListing, local_datetime
from downtime_app.reports import WeekStats

DAY_HEADER = [
    "Date",
    "Start",
    "End",
    "Machine",
    "Duration (min)",
    "Reason",
    "Post No",
    "Operator",
]
WEEK_HEADER = ["Day", "Date", "Stoppages", "Total downtime (min)", "Average (min)"]
POSTS_HEADER = ["Post period", "Downtime (min)", "Stoppages", "Details"]


def format_clock(millis: int | None, tz: tzinfo = timezone.utc) -> str:
    if millis is None:
        return ""
    return local_datetime(millis, tz).strftime("%H:%M")


def _write(rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerows(rows)
    return buffer.getvalue()


def build_day_csv(events: Sequence[DowntimeEvent], tz: tzinfo = timezone.utc) -> str:
    """Every stoppage of the day followed by a totals line."""

    rows: list[list[object]] = [DAY_HEADER]
    for event in events:
        rows.append(
            [
                local_datetime(event.start_time, tz).date().isoformat(),
                format_clock(event.start_time, tz),
                format_clock(event.end_time, tz),
                event.machine_name,
                event.duration_minutes,
                event.comment,
                event.post_number or "",
                event.operator_name or "",
            ]
        )
    total = sum(event.duration_minutes for event in events)
    rows.append([])
    rows.append(["TOTAL:", "", "", f"{len(events)} stoppages", f"{total} min", "", "", ""])
    return _write(rows)


def build_week_csv(week: WeekStats) -> str:
    rows: list[list[object]] = [WEEK_HEADER]
    for day in week.days:
        rows.append(
            [day.day_name, day.date.isoformat(), day.count, day.total_duration, day.average]
        )
    rows.append([])
    rows.append(
        [
            "WEEK TOTAL:",
            f"{week.week_start.isoformat()} - {week.week_end.isoformat()}",
            week.count,
            week.total_duration,
            week.average,
        ]
    )
    return _write(rows)


def build_posts_csv(listings: Sequence[PostListing]) -> str:
    rows: list[list[object]] = [POSTS_HEADER]
    for listing in listings:
        details = "; ".join(
            f"{event.machine_name}: {event.duration_minutes}min" for event in listing.downtimes
        )
        rows.append([listing.label, listing.total_minutes, len(listing.downtimes), details])
    total = sum(listing.total_minutes for listing in listings)
    count = sum(len(listing.downtimes) for listing in listings)
    rows.append([])
    rows.append(["TOTAL:", f"{total} min", f"{count} stoppages", ""])
    return _write(rows)


BACKUP_HEADER = ["ID", "Date", "Start", "End", "Machine", "Duration (min)", "Reason", "Post No", "Operator"]


def build_backup_csv(events: Sequence[DowntimeEvent], tz: tzinfo = timezone.utc) -> str:
    """The complete stoppage log, one row per stoppage."""

    rows: list[list[object]] = [BACKUP_HEADER]
    for event in events:
        rows.append(
            [
                event.id,
                local_datetime(event.start_time, tz).date().isoformat(),
                format_clock(event.start_time, tz),
                format_clock(event.end_time, tz),
                event.machine_name,
                event.duration_minutes,
                event.comment,
                event.post_number or "",
                event.operator_name or "",
            ]
        )
    return _write(rows)
