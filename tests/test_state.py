import pytest

from conftest import MARKER, iso, ms
from downtime_app.state import (
    StateLoaded,
    StateLoadFailed,
    TrackerState,
    active_event_for_machine,
    active_events,
    current_post,
    find_event,
    production_periods,
    reduce,
)


MACHINES = [
    {"id": "m1", "name": "Press"},
    {"id": "m3", "name": MARKER},
]
USERS = [{"user_id": "ole", "role": "operator", "display_name": "Ole"}]


def _loaded():
    rows = [
        {
            "id": 7,
            "machine_id": "m1",
            "operator_id": "ole",
            "start_time": iso(2024, 6, 5, 9),
            "end_time": None,
            "duration": 0,
        },
        {
            "id": 3,
            "machine_id": "m3",
            "operator_id": "ole",
            "start_time": iso(2024, 6, 5, 7),
            "end_time": iso(2024, 6, 5, 7, 5),
            "duration": 5,
            "post_number": 12,
        },
        {
            "id": 4,
            "machine_id": "gone",
            "operator_id": "kari",
            "start_time": iso(2024, 6, 5, 8),
            "end_time": iso(2024, 6, 5, 8, 10),
            "duration": 10,
        },
    ]
    return reduce(
        TrackerState(),
        StateLoaded(machine_rows=MACHINES, user_rows=USERS, downtime_rows=rows, loaded_at=1),
    )


def test_loaded_state_sorts_and_resolves_names():
    state = _loaded()

    assert [event.id for event in state.events] == [3, 4, 7]
    marker = state.events[0]
    assert marker.machine_name == MARKER
    assert marker.post_number == "12"
    assert marker.operator_name == "Ole"
    unknown = state.events[1]
    assert unknown.machine_name == "Unknown machine (gone)"
    assert unknown.operator_name == "Unknown operator (kari)"
    assert state.error is None


def test_selectors_read_from_state():
    state = _loaded()

    assert find_event(state, "7").id == 7
    assert find_event(state, 99) is None
    assert [event.id for event in active_events(state)] == [7]
    assert active_event_for_machine(state, "m1").id == 7
    assert active_event_for_machine(state, "m3") is None
    assert current_post(state, ms(2024, 6, 5, 10)) == "12"
    periods = production_periods(state, ms(2024, 6, 5, 10))
    assert [period.post_number for period in periods] == ["12"]


def test_failed_load_clears_events_and_keeps_error():
    state = reduce(_loaded(), StateLoadFailed(error="boom", loaded_at=2))

    assert state.events == ()
    assert state.error == "boom"
    assert state.loaded_at == 2


def test_unknown_action_is_rejected():
    with pytest.raises(TypeError):
        reduce(TrackerState(), object())
