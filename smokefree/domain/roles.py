"""Account roles and the only automatic transitions between them."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    GUEST = "guest"
    MEMBER = "member"
    COACH = "coach"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | "Role" | None) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown role: {value!r}") from exc


def promote_on_subscription(role: Role) -> Role:
    """Role after a successful subscribe/renew."""
    return Role.MEMBER if role is Role.GUEST else role


def demote_on_lapse(role: Role) -> Role:
    """Role once no membership grants access any more."""
    return Role.GUEST if role is Role.MEMBER else role
