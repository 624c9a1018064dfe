"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between the guard, the resolver and
  the web layer.
- Role strings from profile records are untrusted; `parse_role` is the only
  way to turn them into a `Role`.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Access tier of the signed-in identity.

    `UNRESOLVED` is not "no role": it means the lookup is in flight, has not
    been attempted, failed, or returned a value we do not recognise.
    """

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    UNRESOLVED = "unresolved"

    @property
    def is_resolved(self) -> bool:
        return self is not Role.UNRESOLVED

    def display_role(self) -> "Role":
        """Lowest-privilege stand-in for presentational consumers (menus)."""
        return self if self.is_resolved else Role.STUDENT


# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({Role.STUDENT.value, Role.TEACHER.value, Role.ADMIN.value})

HOME_ROUTES = {
    Role.STUDENT: "/dashboard",
    Role.TEACHER: "/teacher",
    Role.ADMIN: "/admin",
}

LOGIN_ROUTE = "/auth/login"


def parse_role(raw: object) -> Role:
    """Parse a freeform profile value into a `Role`.

    Case and surrounding whitespace are ignored. Anything outside the three
    known roles (typos included) yields `Role.UNRESOLVED`; we never guess.
    """
    if not isinstance(raw, str):
        return Role.UNRESOLVED
    value = raw.strip().lower()
    if value not in ALLOWED_ROLES:
        return Role.UNRESOLVED
    return Role(value)


def home_for(role: Role) -> str:
    """Dedicated landing route for a resolved role."""
    try:
        return HOME_ROUTES[role]
    except KeyError:
        raise ValueError(f"no home route for role {role.value!r}") from None


__all__ = ["Role", "ALLOWED_ROLES", "HOME_ROUTES", "LOGIN_ROUTE", "parse_role", "home_for"]
