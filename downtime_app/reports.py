"""Day, week and history summaries built on top of the period aggregator."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta, timezone, tzinfo
from typing import Any, Iterable, Sequence

from .models import DowntimeEvent, Machine, to_millis
from .periods import (
    ProductionPeriod,
    compute_production_periods,
    event_day,
    local_datetime,
    round_half_up,
)

DAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


@dataclass(frozen=True)
class DayStats:
    date: date
    downtimes: tuple[DowntimeEvent, ...]
    total_downtime: int
    total_pause: int

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.date.weekday()]

    @property
    def total_duration(self) -> int:
        return self.total_downtime + self.total_pause

    @property
    def count(self) -> int:
        return len(self.downtimes)

    @property
    def average(self) -> int:
        return round_half_up(self.total_duration / self.count) if self.count else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_name": self.day_name,
            "count": self.count,
            "total_downtime": self.total_downtime,
            "total_pause": self.total_pause,
            "total_duration": self.total_duration,
            "average": self.average,
        }


@dataclass(frozen=True)
class WeekStats:
    week_start: date
    week_end: date
    days: tuple[DayStats, ...]

    @property
    def total_downtime(self) -> int:
        return sum(day.total_downtime for day in self.days)

    @property
    def total_pause(self) -> int:
        return sum(day.total_pause for day in self.days)

    @property
    def total_duration(self) -> int:
        return self.total_downtime + self.total_pause

    @property
    def count(self) -> int:
        return sum(day.count for day in self.days)

    @property
    def average(self) -> int:
        return round_half_up(self.total_duration / self.count) if self.count else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "days": [day.to_dict() for day in self.days],
            "total_downtime": self.total_downtime,
            "total_pause": self.total_pause,
            "total_duration": self.total_duration,
            "count": self.count,
            "average": self.average,
        }


@dataclass(frozen=True)
class DayPeriods:
    date: date
    periods: tuple[ProductionPeriod, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_name": DAY_NAMES[self.date.weekday()],
            "periods": [period.to_dict() for period in self.periods],
        }


@dataclass(frozen=True)
class HistorySummary:
    count: int = 0
    total_minutes: int = 0
    by_machine: dict[str, int] = field(default_factory=dict)
    by_date: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_minutes": self.total_minutes,
            "by_machine": dict(self.by_machine),
            "by_date": dict(self.by_date),
        }


def _countable(events: Iterable[DowntimeEvent]) -> list[DowntimeEvent]:
    # Lot markers and running timers are not stoppage time yet.
    return [event for event in events if not event.on_marker_machine and not event.active]


def week_bounds(day: date) -> tuple[date, date]:
    """Return the Monday and Sunday of the week containing ``day``."""

    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def summarize_day(
    events: Sequence[DowntimeEvent], day: date, tz: tzinfo = timezone.utc
) -> DayStats:
    todays = sorted(
        (event for event in _countable(events) if event_day(event, tz) == day),
        key=lambda event: event.start_time,
    )
    return DayStats(
        date=day,
        downtimes=tuple(todays),
        total_downtime=sum(event.duration_minutes for event in todays if not event.is_pause),
        total_pause=sum(event.duration_minutes for event in todays if event.is_pause),
    )


def compute_week_stats(
    events: Sequence[DowntimeEvent],
    now: Any,
    tz: tzinfo = timezone.utc,
    week_start: date | None = None,
) -> WeekStats:
    """Statistics of the week containing ``week_start`` (default: this week)."""

    anchor = week_start or local_datetime(to_millis(now), tz).date()
    monday, sunday = week_bounds(anchor)
    days = tuple(summarize_day(events, monday + timedelta(days=offset), tz) for offset in range(7))
    return WeekStats(week_start=monday, week_end=sunday, days=days)


def compute_week_periods(
    events: Sequence[DowntimeEvent],
    now: Any,
    tz: tzinfo = timezone.utc,
    week_start: date | None = None,
) -> list[DayPeriods]:
    """Return the production periods of each day of a week up to today."""

    today = local_datetime(to_millis(now), tz).date()
    monday, sunday = week_bounds(week_start or today)
    result = []
    day = monday
    while day <= min(today, sunday):
        result.append(
            DayPeriods(date=day, periods=tuple(compute_production_periods(events, now, tz, day)))
        )
        day += timedelta(days=1)
    return result


def available_weeks(
    events: Iterable[DowntimeEvent], now: Any, tz: tzinfo = timezone.utc
) -> list[date]:
    """Mondays of the weeks that hold stoppages, newest first."""

    current, _ = week_bounds(local_datetime(to_millis(now), tz).date())
    weeks = {current}
    for event in events:
        weeks.add(week_bounds(event_day(event, tz))[0])
    return sorted(weeks, reverse=True)


def summarize_history(
    events: Sequence[DowntimeEvent],
    date_from: date | None = None,
    date_to: date | None = None,
    tz: tzinfo = timezone.utc,
) -> HistorySummary:
    """Total stoppage minutes per machine and per day between two dates.

    Both bounds are inclusive and optional.
    """

    by_machine: defaultdict[str, int] = defaultdict(int)
    by_date: defaultdict[str, int] = defaultdict(int)
    count = 0
    total = 0
    for event in _countable(events):
        day = event_day(event, tz)
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue
        count += 1
        total += event.duration_minutes
        by_machine[event.machine_name] += event.duration_minutes
        by_date[day.isoformat()] += event.duration_minutes
    return HistorySummary(
        count=count,
        total_minutes=total,
        by_machine=dict(by_machine),
        by_date=dict(sorted(by_date.items())),
    )


REPORT_KINDS = ("daily", "weekly", "monthly")
TOP_LIMIT = 5


@dataclass(frozen=True)
class MachineStats:
    name: str
    color: str
    count: int = 0
    total_minutes: int = 0

    @property
    def average(self) -> int:
        return round_half_up(self.total_minutes / self.count) if self.count else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "color": self.color,
            "count": self.count,
            "total_minutes": self.total_minutes,
            "average": self.average,
        }


def summarize_machines(
    events: Sequence[DowntimeEvent],
    machines: Sequence[Machine],
    day: date,
    tz: tzinfo = timezone.utc,
) -> list[MachineStats]:
    """Per-machine stoppage count and minutes for ``day``.

    Machines without stoppages are listed with zeros; the result is ordered by
    total minutes, largest first.
    """

    colors = {machine.name: machine.color for machine in machines}
    counts: defaultdict[str, int] = defaultdict(int)
    minutes: defaultdict[str, int] = defaultdict(int)
    for event in events:
        if event.active or event_day(event, tz) != day:
            continue
        counts[event.machine_name] += 1
        minutes[event.machine_name] += event.duration_minutes

    names = list(colors)
    names.extend(name for name in counts if name not in colors)
    stats = [
        MachineStats(
            name=name,
            color=colors.get(name, "bg-gray-500"),
            count=counts[name],
            total_minutes=minutes[name],
        )
        for name in names
    ]
    return sorted(stats, key=lambda entry: entry.total_minutes, reverse=True)


@dataclass(frozen=True)
class PeriodReport:
    """Daily, weekly or monthly downtime report."""

    kind: str
    date_from: date
    date_to: date
    total_minutes: int
    count: int
    top_machines: tuple[dict[str, Any], ...]
    top_causes: tuple[dict[str, Any], ...]
    operators: tuple[dict[str, Any], ...]
    daily_trend: tuple[dict[str, Any], ...]

    @property
    def average(self) -> int:
        return round_half_up(self.total_minutes / self.count) if self.count else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "total_minutes": self.total_minutes,
            "count": self.count,
            "average": self.average,
            "top_machines": list(self.top_machines),
            "top_causes": list(self.top_causes),
            "operators": list(self.operators),
            "daily_trend": list(self.daily_trend),
        }


def report_range(kind: str, selected: date) -> tuple[date, date]:
    if kind == "daily":
        return selected, selected
    if kind == "weekly":
        return week_bounds(selected)
    if kind == "monthly":
        first = selected.replace(day=1)
        following = (first + timedelta(days=32)).replace(day=1)
        return first, following - timedelta(days=1)
    raise ValueError(f"Unknown report type: {kind!r}")


def _grouped(
    events: Iterable[DowntimeEvent], key, label: str
) -> list[dict[str, Any]]:
    groups: dict[str, dict[str, Any]] = {}
    for event in events:
        name = key(event)
        entry = groups.setdefault(name, {label: name, "count": 0, "total_minutes": 0})
        entry["count"] += 1
        entry["total_minutes"] += event.duration_minutes
    return list(groups.values())


def build_period_report(
    events: Sequence[DowntimeEvent],
    kind: str,
    selected: date,
    tz: tzinfo = timezone.utc,
) -> PeriodReport:
    """Summarise the stoppages of the day, week or month around ``selected``.

    Raises:
        ValueError: if ``kind`` is not one of :data:`REPORT_KINDS`.
    """

    date_from, date_to = report_range(kind, selected)
    chosen = [
        event for event in _countable(events) if date_from <= event_day(event, tz) <= date_to
    ]

    machines = sorted(
        _grouped(chosen, lambda event: event.machine_name, "name"),
        key=lambda entry: entry["total_minutes"],
        reverse=True,
    )
    causes = sorted(
        _grouped(chosen, lambda event: event.comment, "cause"),
        key=lambda entry: entry["count"],
        reverse=True,
    )
    operators = sorted(
        _grouped(chosen, lambda event: event.operator_name or "", "name"),
        key=lambda entry: entry["total_minutes"],
        reverse=True,
    )
    trend = sorted(
        _grouped(chosen, lambda event: event_day(event, tz).isoformat(), "date"),
        key=lambda entry: entry["date"],
    )
    return PeriodReport(
        kind=kind,
        date_from=date_from,
        date_to=date_to,
        total_minutes=sum(event.duration_minutes for event in chosen),
        count=len(chosen),
        top_machines=tuple(machines[:TOP_LIMIT]),
        top_causes=tuple(causes[:TOP_LIMIT]),
        operators=tuple(operators),
        daily_trend=tuple(trend),
    )
