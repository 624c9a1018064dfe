"""
Navigation Guard: decide, per navigation, whether a path may be shown.

The decision is a pure function of (guard state, path, route table). It keeps
no redirect history, so evaluating it on every request converges instead of
looping. The guard state is derived from a `SessionSnapshot`; while a
transition is active it is derived from the transition's anchor, which freezes
decisions at what the user saw before the transition began.

Rules (in order):
    1. identity not yet known          -> PENDING
    2. signed out                      -> ALLOW public routes, else REDIRECT login
    3. role unresolved                 -> ALLOW public/shared, PENDING root and role-scoped
       (after a lookup timeout: UNAVAILABLE instead of PENDING)
    4. role resolved                   -> root REDIRECTs to the role's home;
       public/shared ALLOW; role-scoped ALLOW when the role matches, else
       REDIRECT to the role's home
Classification uses the longest matching path prefix, so a shared sub-path
under a role-scoped prefix is shared. Paths not in the table are public.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple

from .domain import HOME_ROUTES, LOGIN_ROUTE, Role, home_for
from .session_state import SessionSnapshot

ROOT_PATH = "/"


class RouteKind(str, Enum):
    PUBLIC = "public"
    SHARED = "shared"
    ROLE_SCOPED = "role_scoped"


@dataclass(frozen=True)
class RouteClass:
    kind: RouteKind
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    @classmethod
    def public(cls) -> "RouteClass":
        return cls(RouteKind.PUBLIC)

    @classmethod
    def shared(cls) -> "RouteClass":
        return cls(RouteKind.SHARED)

    @classmethod
    def scoped(cls, *roles: Role) -> "RouteClass":
        if not roles or any(not r.is_resolved for r in roles):
            raise ValueError("role-scoped routes need at least one concrete role")
        return cls(RouteKind.ROLE_SCOPED, frozenset(roles))

    def admits(self, role: Role) -> bool:
        return self.kind is not RouteKind.ROLE_SCOPED or role in self.roles


PUBLIC = RouteClass.public()
SHARED = RouteClass.shared()


def normalize_path(path: str) -> str:
    """Strip query/fragment and trailing slashes; empty becomes root."""
    value = (path or "").split("?", 1)[0].split("#", 1)[0].strip()
    if not value.startswith("/"):
        value = "/" + value
    while len(value) > 1 and value.endswith("/"):
        value = value[:-1]
    return value


def _matches(prefix: str, path: str) -> bool:
    if prefix == ROOT_PATH:
        return path == ROOT_PATH
    return path == prefix or path.startswith(prefix + "/")


class RouteTable:
    """Static mapping of path prefix -> RouteClass (segment-aware prefix match)."""

    def __init__(self, entries: Mapping[str, RouteClass], *, default: RouteClass = PUBLIC) -> None:
        normalized = {normalize_path(prefix): cls for prefix, cls in entries.items()}
        # Longest prefix first so nested entries win over their parents.
        self._entries: Tuple[Tuple[str, RouteClass], ...] = tuple(
            sorted(normalized.items(), key=lambda item: len(item[0]), reverse=True)
        )
        self._default = default
        for role, home in HOME_ROUTES.items():
            if not self.classify(home).admits(role):
                raise ValueError(f"home route {home!r} is not reachable for role {role.value!r}")

    def classify(self, path: str) -> RouteClass:
        target = normalize_path(path)
        for prefix, cls in self._entries:
            if _matches(prefix, target):
                return cls
        return self._default

    def prefixes(self) -> Iterable[str]:
        return [prefix for prefix, _ in self._entries]


class GuardPhase(str, Enum):
    AWAITING_IDENTITY = "awaiting_identity"
    SIGNED_OUT = "signed_out"
    AWAITING_ROLE = "awaiting_role"
    ROLE_UNAVAILABLE = "role_unavailable"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class GuardState:
    phase: GuardPhase
    role: Role = Role.UNRESOLVED


def guard_state_for(snapshot: SessionSnapshot) -> GuardState:
    view = snapshot
    if snapshot.transitioning and snapshot.anchor is not None:
        view = snapshot.anchor
    if not view.identity_known:
        return GuardState(GuardPhase.AWAITING_IDENTITY)
    if view.identity is None:
        return GuardState(GuardPhase.SIGNED_OUT)
    if not view.role.is_resolved:
        if view.role_timed_out:
            return GuardState(GuardPhase.ROLE_UNAVAILABLE)
        return GuardState(GuardPhase.AWAITING_ROLE)
    return GuardState(GuardPhase.RESOLVED, view.role)


class DecisionKind(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    PENDING = "pending"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    location: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(DecisionKind.ALLOW)

    @classmethod
    def redirect(cls, location: str) -> "Decision":
        return cls(DecisionKind.REDIRECT, location)

    @classmethod
    def pending(cls) -> "Decision":
        return cls(DecisionKind.PENDING)

    @classmethod
    def unavailable(cls) -> "Decision":
        return cls(DecisionKind.UNAVAILABLE)


def decide(state: GuardState, path: str, table: RouteTable) -> Decision:
    target = normalize_path(path)
    cls = table.classify(target)

    if state.phase is GuardPhase.AWAITING_IDENTITY:
        return Decision.pending()

    if state.phase is GuardPhase.SIGNED_OUT:
        if cls.kind is RouteKind.PUBLIC and target != ROOT_PATH:
            return Decision.allow()
        return Decision.redirect(LOGIN_ROUTE)

    if state.phase in (GuardPhase.AWAITING_ROLE, GuardPhase.ROLE_UNAVAILABLE):
        if target != ROOT_PATH and cls.kind is not RouteKind.ROLE_SCOPED:
            return Decision.allow()
        if state.phase is GuardPhase.ROLE_UNAVAILABLE:
            return Decision.unavailable()
        return Decision.pending()

    # Resolved: the root redirect fires before any shared-route allowance.
    if target == ROOT_PATH:
        return Decision.redirect(home_for(state.role))
    if cls.admits(state.role):
        return Decision.allow()
    return Decision.redirect(home_for(state.role))


DEFAULT_ROUTE_TABLE = RouteTable(
    {
        "/": SHARED,
        "/auth": PUBLIC,
        "/health": PUBLIC,
        "/static": PUBLIC,
        "/dashboard": SHARED,
        "/attendance": SHARED,
        "/assignments": SHARED,
        "/calendar": SHARED,
        "/timetable": SHARED,
        "/marks": SHARED,
        "/library": SHARED,
        "/exams": SHARED,
        "/announcements": SHARED,
        "/documents": SHARED,
        "/chat": SHARED,
        "/placements": SHARED,
        "/transport": SHARED,
        "/fees": SHARED,
        "/profile": SHARED,
        "/settings": SHARED,
        "/teacher": RouteClass.scoped(Role.TEACHER),
        "/admin": RouteClass.scoped(Role.ADMIN),
        "/api/me": SHARED,
        "/api/attendance/me": SHARED,
        "/api/attendance/classes": RouteClass.scoped(Role.TEACHER, Role.ADMIN),
    }
)


class NavigationGuard:
    """Binds `decide` to a route table; evaluates session snapshots."""

    def __init__(self, table: RouteTable = DEFAULT_ROUTE_TABLE) -> None:
        self.table = table

    def state_for(self, snapshot: SessionSnapshot) -> GuardState:
        return guard_state_for(snapshot)

    def evaluate(self, snapshot: SessionSnapshot, path: str) -> Decision:
        return decide(guard_state_for(snapshot), path, self.table)
