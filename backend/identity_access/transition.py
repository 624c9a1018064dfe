"""
Transition Coordinator: hide identity churn caused by our own admin workflows.

Why: Provisioning an account through the identity source signs the new account
in, then out, then the admin back in. Without a transition, the navigation
guard would react to each of those events (redirects, loading flashes).

Usage:
    with coordinator.transition():
        await auth.create_account(...)
        ...

`begin()` takes effect synchronously, before the first await inside the
block, and the context manager ends the transition on every exit path. Prefer
the context manager over calling `begin`/`end` by hand.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from .identity import Identity
from .session_state import SessionSnapshot, SessionState

logger = logging.getLogger("campus.identity_access")


class TransitionCoordinator:
    def __init__(self, state: SessionState) -> None:
        self._state = state

    def is_transitioning(self) -> bool:
        return self._state.snapshot.transitioning

    @property
    def anchor(self) -> Optional[SessionSnapshot]:
        return self._state.snapshot.anchor

    @property
    def anchor_identity(self) -> Optional[Identity]:
        anchor = self.anchor
        return anchor.identity if anchor is not None else None

    def begin(self) -> SessionSnapshot:
        if self.is_transitioning():
            raise RuntimeError("transition already in progress")
        snap = self._state.transition_began()
        logger.debug("Transition began (epoch %s)", snap.epoch)
        return snap

    def end(self) -> SessionSnapshot:
        snap = self._state.transition_ended()
        logger.debug("Transition ended (epoch %s)", snap.epoch)
        return snap

    @contextmanager
    def transition(self) -> Iterator[SessionSnapshot]:
        snap = self.begin()
        try:
            yield snap.anchor
        finally:
            self.end()
