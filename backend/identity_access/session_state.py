"""
Session State: the single mutable "who am I, what role" record of a browser session.

Design:
    State transitions are a pure reducer over explicit events, so ordering
    never depends on callback nesting and every rule is unit-testable.
    `SessionState` owns the current snapshot and is the only place that
    applies events; readers get immutable `SessionSnapshot` objects.

Invariants:
    - identity is None  =>  role is UNRESOLVED (sign-out resets in the same update)
    - every identity change bumps `epoch`; a role result carrying an older
      epoch is stale and discarded (last identity wins)
    - `resolving` is True only while the resolution for the current epoch is
      outstanding
    - while `transitioning`, `anchor` holds the snapshot taken right before the
      transition began
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Union
import logging

from .domain import Role
from .identity import Identity
from .resolver import Resolution

logger = logging.getLogger("campus.identity_access")


@dataclass(frozen=True)
class SessionSnapshot:
    identity: Optional[Identity] = None
    role: Role = Role.UNRESOLVED
    resolving: bool = False
    transitioning: bool = False
    identity_known: bool = False
    role_timed_out: bool = False
    epoch: int = 0
    anchor: Optional["SessionSnapshot"] = None


SIGNED_OUT = SessionSnapshot(identity_known=True)


# --- Events -------------------------------------------------------------------


@dataclass(frozen=True)
class IdentityChanged:
    identity: Optional[Identity]


@dataclass(frozen=True)
class RoleResolved:
    epoch: int
    role: Role
    timed_out: bool = False


@dataclass(frozen=True)
class TransitionBegan:
    pass


@dataclass(frozen=True)
class TransitionEnded:
    pass


SessionEvent = Union[IdentityChanged, RoleResolved, TransitionBegan, TransitionEnded]


def reduce(state: SessionSnapshot, event: SessionEvent) -> SessionSnapshot:
    """Return the next snapshot; returns `state` itself when the event is a no-op."""
    if isinstance(event, IdentityChanged):
        return replace(
            state,
            identity=event.identity,
            role=Role.UNRESOLVED,
            resolving=event.identity is not None,
            identity_known=True,
            role_timed_out=False,
            epoch=state.epoch + 1,
        )
    if isinstance(event, RoleResolved):
        if event.epoch != state.epoch or state.identity is None or not state.resolving:
            return state
        return replace(state, role=event.role, resolving=False, role_timed_out=event.timed_out)
    if isinstance(event, TransitionBegan):
        if state.transitioning:
            return state
        return replace(state, transitioning=True, anchor=replace(state, anchor=None))
    if isinstance(event, TransitionEnded):
        if not state.transitioning:
            return state
        anchor = state.anchor
        nxt = replace(state, transitioning=False, anchor=None)
        # Same account signed back in and its lookup still in flight: keep the
        # role the user was already seeing until the lookup settles.
        if (
            anchor is not None
            and anchor.identity is not None
            and nxt.identity is not None
            and anchor.identity.uid == nxt.identity.uid
            and nxt.resolving
            and anchor.role.is_resolved
        ):
            nxt = replace(nxt, role=anchor.role)
        return nxt
    raise TypeError(f"unknown session event: {event!r}")


SnapshotCallback = Callable[[SessionSnapshot], None]


class SessionState:
    """Owner and publisher of the session snapshot.

    Mutators:
        - `identity_changed`: called by the identity source subscription only.
        - `role_resolved`: called with the result of a role lookup only.
        - `transition_began` / `transition_ended`: called by
          `TransitionCoordinator` only.
    """

    def __init__(self, initial: SessionSnapshot | None = None) -> None:
        self._snapshot = initial or SessionSnapshot()
        self._subscribers: List[SnapshotCallback] = []

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def identity_changed(self, identity: Optional[Identity]) -> SessionSnapshot:
        return self._dispatch(IdentityChanged(identity))

    def role_resolved(self, epoch: int, resolution: Resolution) -> bool:
        """Apply a lookup result; returns False when it was stale and discarded."""
        before = self._snapshot
        after = self._dispatch(RoleResolved(epoch=epoch, role=resolution.role, timed_out=resolution.timed_out))
        if after is before:
            logger.debug("Discarded stale role resolution (epoch %s, current %s)", epoch, before.epoch)
            return False
        return True

    def transition_began(self) -> SessionSnapshot:
        return self._dispatch(TransitionBegan())

    def transition_ended(self) -> SessionSnapshot:
        return self._dispatch(TransitionEnded())

    def _dispatch(self, event: SessionEvent) -> SessionSnapshot:
        nxt = reduce(self._snapshot, event)
        if nxt is self._snapshot:
            return nxt
        self._snapshot = nxt
        for callback in list(self._subscribers):
            try:
                callback(nxt)
            except Exception as exc:
                logger.warning("Session subscriber failed: %s", exc.__class__.__name__)
        return nxt
