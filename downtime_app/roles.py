from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """The four kinds of tracker user."""

    OPERATOR = "operator"
    MANAGER = "manager"
    ADMIN = "admin"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: str | None, user_id: str | None = None) -> "Role":
        """Return the role named by ``value``.

        Credential rows created before the role column existed carry no role;
        those fall back to the login-name convention of the shop floor.
        """

        text = (value or "").strip().lower()
        if text == "super":
            return cls.ADMIN
        for role in cls:
            if role.value == text:
                return role
        return _LEGACY_ROLES.get((user_id or "").strip().lower(), cls.OPERATOR)

    @property
    def refresh_seconds(self) -> int:
        return _REFRESH_SECONDS[self]

    @property
    def can_record(self) -> bool:
        return self in _RECORDING_ROLES

    @property
    def can_edit(self) -> bool:
        return self in (Role.MANAGER, Role.ADMIN)

    @property
    def can_administer(self) -> bool:
        return self is Role.ADMIN


_LEGACY_ROLES = {
    "admin": Role.ADMIN,
    "sjef": Role.MANAGER,
    "tv": Role.VIEWER,
}

# Seconds between dashboard polls.
_REFRESH_SECONDS = {
    Role.OPERATOR: 1,
    Role.VIEWER: 5,
    Role.MANAGER: 10,
    Role.ADMIN: 10,
}

_RECORDING_ROLES = frozenset({Role.OPERATOR, Role.MANAGER, Role.ADMIN})

# Accounts that the admin panel refuses to delete.
PROTECTED_USER_IDS = frozenset({"admin", "sjef"})

ROLE_LABELS = {
    Role.OPERATOR: "Operator",
    Role.MANAGER: "Manager",
    Role.ADMIN: "Administrator",
    Role.VIEWER: "Viewer",
}
