"""Records shared by the Supabase store, the reports and the views."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from .roles import Role

# Stoppages recorded against this machine announce a new production lot/post.
MARKER_MACHINE_NAME = "Omposting/Korigering"
PAUSE_KEYWORD = "pause"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)

_DISPLAY_NAME_OVERRIDES = {
    "tv": "TV Monitor",
}


def to_millis(value: Any) -> int | None:
    """Return ``value`` as milliseconds since the epoch.

    Accepts epoch milliseconds, ``datetime`` objects and ISO 8601 strings as
    returned by PostgREST.  Naive values are interpreted as UTC.
    """

    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // _MILLISECOND


def millis_to_iso(millis: int | None) -> str | None:
    if millis is None:
        return None
    return (_EPOCH + timedelta(milliseconds=millis)).isoformat()


def minutes_between(start: int, end: int) -> int:
    """Whole minutes elapsed between two epoch-millisecond timestamps."""

    return (end - start) // 60000


def default_display_name(user_id: str) -> str:
    if not user_id:
        return ""
    override = _DISPLAY_NAME_OVERRIDES.get(user_id.lower())
    if override:
        return override
    return user_id[0].upper() + user_id[1:]


@dataclass(frozen=True)
class DowntimeEvent:
    """A closed or still running stoppage of one machine."""

    id: Any
    machine_id: str
    machine_name: str
    start_time: int
    end_time: int | None = None
    duration_minutes: int = 0
    comment: str = ""
    post_number: str | None = None
    operator_id: str | None = None
    operator_name: str | None = None
    date: str | None = None
    photo_url: str | None = None

    @property
    def active(self) -> bool:
        return self.end_time is None

    @property
    def on_marker_machine(self) -> bool:
        return self.machine_name == MARKER_MACHINE_NAME

    @property
    def is_marker(self) -> bool:
        # A marker without a post number carries no lot label and is ignored.
        return self.on_marker_machine and bool(self.post_number)

    @property
    def is_pause(self) -> bool:
        return PAUSE_KEYWORD in (self.machine_name or "").lower()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["active"] = self.active
        payload["is_marker"] = self.is_marker
        return payload


@dataclass(frozen=True)
class Machine:
    id: str
    name: str
    color: str = "bg-blue-500"
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AppUser:
    """A login from the credential table; the password value stays out of ``to_dict``."""

    user_id: str
    role: Role
    display_name: str
    password_hash: str | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "display_name": self.display_name,
            "has_password": self.has_password,
        }


def machine_from_row(row: Mapping[str, Any]) -> Machine:
    return Machine(
        id=str(row.get("id")),
        name=row.get("name") or "",
        color=row.get("color") or "bg-blue-500",
        created_at=row.get("created_at"),
    )


def user_from_row(row: Mapping[str, Any]) -> AppUser:
    user_id = str(row.get("user_id") or "")
    return AppUser(
        user_id=user_id,
        role=Role.parse(row.get("role"), user_id),
        display_name=row.get("display_name") or default_display_name(user_id),
        password_hash=row.get("password_hash"),
    )


def event_from_row(
    row: Mapping[str, Any],
    machines: Mapping[str, Machine] | None = None,
    users: Mapping[str, AppUser] | None = None,
) -> DowntimeEvent:
    """Build a :class:`DowntimeEvent` from a ``downtimes`` row.

    Machine and operator names are resolved through the supplied lookups;
    unknown identifiers are shown with a placeholder name rather than dropped.
    """

    machine_id = str(row.get("machine_id") or "")
    operator_id = row.get("operator_id")
    machine = (machines or {}).get(machine_id)
    operator = (users or {}).get(str(operator_id)) if operator_id is not None else None

    post_number = row.get("post_number")
    return DowntimeEvent(
        id=row.get("id"),
        machine_id=machine_id,
        machine_name=machine.name if machine else f"Unknown machine ({machine_id})",
        start_time=to_millis(row.get("start_time")) or 0,
        end_time=to_millis(row.get("end_time")),
        duration_minutes=int(row.get("duration") or 0),
        comment=row.get("comment") or "",
        post_number=str(post_number) if post_number not in (None, "") else None,
        operator_id=str(operator_id) if operator_id is not None else None,
        operator_name=(
            operator.display_name if operator else f"Unknown operator ({operator_id})"
        ),
        date=row.get("date"),
        photo_url=row.get("photo_url"),
    )
