"""
In-memory store of portal sessions keyed by an opaque session id.

Why: Keep identity, role and transition state server-side and opaque to the
client. Cookies carry only the session id. For multi-instance deployments,
sessions must be pinned to an instance (state lives in-process).
"""
from __future__ import annotations

from typing import Dict, Optional
import time

from .identity import IdentityProvider
from .profiles import ProfileStore
from .session import PortalSession


def _now() -> int:
    return int(time.time())


class PortalSessionStore:
    def __init__(self, *, provider: IdentityProvider, profiles: ProfileStore, timeout_seconds: float, ttl_seconds: int = 3600):
        self.provider = provider
        self.profiles = profiles
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds
        self._data: Dict[str, PortalSession] = {}

    def create(self) -> PortalSession:
        session = PortalSession.open(
            provider=self.provider,
            profiles=self.profiles,
            timeout_seconds=self.timeout_seconds,
            ttl_seconds=self.ttl_seconds,
        )
        self._data[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[PortalSession]:
        session = self._data.get(session_id)
        if not session:
            return None
        if session.expires_at and session.expires_at < _now():
            self.delete(session_id)
            return None
        return session

    def delete(self, session_id: str) -> None:
        session = self._data.pop(session_id, None)
        if session is not None:
            session.close()

    def __len__(self) -> int:
        return len(self._data)
