"""
Per-browser-session wiring of identity source, resolver, state and transitions.

`SessionCoordinator` subscribes to the identity source, feeds identity changes
into `SessionState` in arrival order and issues exactly one role lookup per
change. Lookups are tagged with the epoch they were issued for; superseded
lookups are left to finish and their results are dropped by the state.

`PortalSession` bundles one of each for a browser session so nothing is
shared between sessions except the identity provider and profile store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Set
import asyncio
import logging
import secrets
import time

from .identity import AuthSession, Identity, IdentityProvider
from .profiles import ProfileStore
from .resolver import RoleResolver
from .session_state import SessionSnapshot, SessionState
from .transition import TransitionCoordinator

logger = logging.getLogger("campus.identity_access")


class SessionCoordinator:
    def __init__(self, auth: AuthSession, resolver: RoleResolver, state: SessionState) -> None:
        self._auth = auth
        self._resolver = resolver
        self._state = state
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        """Subscribe to the identity source (fires once with the current identity)."""
        if self._unsubscribe is None:
            self._unsubscribe = self._auth.subscribe(self._on_identity)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()

    def _on_identity(self, identity: Optional[Identity]) -> None:
        snap = self._state.identity_changed(identity)
        if identity is None:
            return
        task = asyncio.get_running_loop().create_task(self._resolve(snap.epoch, identity))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def retry(self) -> bool:
        """Re-issue the role lookup for the current identity (e.g. after a timeout).

        Re-announces the current identity so the pending state, epoch and
        lookup follow the normal identity-change path. Returns False when
        nobody is signed in, a lookup is outstanding or the role is known.
        """
        snap = self._state.snapshot
        if snap.identity is None or snap.resolving or snap.role.is_resolved:
            return False
        self._on_identity(self._auth.current)
        return True

    async def _resolve(self, epoch: int, identity: Identity) -> None:
        resolution = await self._resolver.resolve(identity)
        self._state.role_resolved(epoch, resolution)

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def settled(self) -> SessionSnapshot:
        """Wait until no role lookup is outstanding; returns the resulting snapshot."""
        while True:
            outstanding = [task for task in self._tasks if not task.done()]
            if not outstanding:
                return self._state.snapshot
            await asyncio.gather(*outstanding, return_exceptions=True)


@dataclass
class PortalSession:
    session_id: str
    auth: AuthSession
    state: SessionState
    coordinator: SessionCoordinator
    transition: TransitionCoordinator
    expires_at: Optional[int] = None
    created_at: int = field(default_factory=lambda: int(time.time()))

    @classmethod
    def open(
        cls,
        *,
        provider: IdentityProvider,
        profiles: ProfileStore,
        timeout_seconds: float,
        ttl_seconds: Optional[int] = None,
    ) -> "PortalSession":
        """Create and start a session; must run inside the event loop."""
        auth = AuthSession(provider)
        state = SessionState()
        coordinator = SessionCoordinator(auth, RoleResolver(profiles, timeout_seconds=timeout_seconds), state)
        session = cls(
            session_id=secrets.token_urlsafe(24),
            auth=auth,
            state=state,
            coordinator=coordinator,
            transition=TransitionCoordinator(state),
            expires_at=int(time.time()) + ttl_seconds if ttl_seconds else None,
        )
        coordinator.start()
        return session

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.state.snapshot

    def close(self) -> None:
        self.coordinator.close()
