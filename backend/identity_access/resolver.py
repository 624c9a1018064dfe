"""
Role resolution for a signed-in identity.

Contract: `resolve(identity)` performs exactly one profile lookup, bounded by
a timeout, and never raises. Failures collapse into `Role.UNRESOLVED` so the
navigation layer only ever sees a value, never an exception. A timeout is
reported separately (`Resolution.timed_out`) so the guard can stop showing a
loading placeholder and offer a retry instead.
"""
from __future__ import annotations

from dataclasses import dataclass
import asyncio
import logging

from .domain import Role, parse_role
from .identity import Identity
from .profiles import ProfileStore

logger = logging.getLogger("campus.identity_access")

DEFAULT_RESOLUTION_TIMEOUT_SECONDS = 8.0


@dataclass(frozen=True)
class Resolution:
    role: Role
    timed_out: bool = False


class RoleResolver:
    def __init__(self, profiles: ProfileStore, *, timeout_seconds: float = DEFAULT_RESOLUTION_TIMEOUT_SECONDS) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._profiles = profiles
        self.timeout_seconds = timeout_seconds

    async def resolve(self, identity: Identity) -> Resolution:
        try:
            record = await asyncio.wait_for(self._profiles.get(identity.uid), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Role lookup timed out after %ss for uid=%s", self.timeout_seconds, identity.uid[-6:])
            return Resolution(Role.UNRESOLVED, timed_out=True)
        except Exception as exc:
            logger.warning("Role lookup failed: %s", exc.__class__.__name__)
            return Resolution(Role.UNRESOLVED)
        if record is None:
            logger.info("No profile for uid=%s", identity.uid[-6:])
            return Resolution(Role.UNRESOLVED)
        role = parse_role(record.role)
        if not role.is_resolved:
            logger.info("Profile role invalid for uid=%s", identity.uid[-6:])
        return Resolution(role)
