"""Application state and the reducer that produces it.

Every request rebuilds a :class:`TrackerState` by dispatching a load action
against an empty state.  Views only read from the state through the
selectors below, which take the clock value explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timezone, tzinfo
from typing import Any, Mapping, Sequence

from .models import AppUser, DowntimeEvent, Machine, event_from_row, machine_from_row, user_from_row
from .periods import (
    PostListing,
    ProductionPeriod,
    compute_post_listing,
    compute_production_periods,
    current_post_number,
)


@dataclass(frozen=True)
class TrackerState:
    machines: tuple[Machine, ...] = ()
    users: tuple[AppUser, ...] = ()
    events: tuple[DowntimeEvent, ...] = ()
    error: str | None = None
    loaded_at: int | None = None


@dataclass(frozen=True)
class StateLoaded:
    machine_rows: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    user_rows: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    downtime_rows: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    loaded_at: int | None = None


@dataclass(frozen=True)
class StateLoadFailed:
    error: str
    loaded_at: int | None = None


def reduce(state: TrackerState, action: Any) -> TrackerState:
    if isinstance(action, StateLoaded):
        machines = tuple(machine_from_row(row) for row in action.machine_rows)
        users = tuple(user_from_row(row) for row in action.user_rows)
        machine_lookup = {machine.id: machine for machine in machines}
        user_lookup = {user.user_id: user for user in users}
        events = sorted(
            (event_from_row(row, machine_lookup, user_lookup) for row in action.downtime_rows),
            key=lambda event: event.start_time,
        )
        return TrackerState(
            machines=machines,
            users=users,
            events=tuple(events),
            error=None,
            loaded_at=action.loaded_at,
        )
    if isinstance(action, StateLoadFailed):
        # The store stays authoritative; show nothing rather than stale rows.
        return replace(state, events=(), error=action.error, loaded_at=action.loaded_at)
    raise TypeError(f"Unsupported action: {action!r}")


def find_event(state: TrackerState, event_id: Any) -> DowntimeEvent | None:
    wanted = str(event_id)
    for event in state.events:
        if str(event.id) == wanted:
            return event
    return None


def find_machine(state: TrackerState, machine_id: Any) -> Machine | None:
    wanted = str(machine_id)
    for machine in state.machines:
        if machine.id == wanted:
            return machine
    return None


def active_events(state: TrackerState) -> list[DowntimeEvent]:
    return [event for event in state.events if event.active]


def active_event_for_machine(state: TrackerState, machine_id: Any) -> DowntimeEvent | None:
    wanted = str(machine_id)
    for event in active_events(state):
        if event.machine_id == wanted:
            return event
    return None


def production_periods(
    state: TrackerState, now: Any, tz: tzinfo = timezone.utc
) -> list[ProductionPeriod]:
    return compute_production_periods(state.events, now, tz)


def post_listing(state: TrackerState, now: Any, tz: tzinfo = timezone.utc) -> list[PostListing]:
    return compute_post_listing(state.events, now, tz)


def current_post(state: TrackerState, now: Any, tz: tzinfo = timezone.utc) -> str | None:
    return current_post_number(state.events, now, tz)
