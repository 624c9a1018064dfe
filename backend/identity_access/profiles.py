"""
Profile records and the in-memory Profile Store for development.

Why: The role of an identity lives in its profile record (one document per
uid). The resolver only needs `get`; admin provisioning and the login form
also need `put` and a roll-number lookup; the bootstrap admin seed asks
whether any profile holds a role yet. For production, use
`profiles_db.DBProfileStore`.

Note: `ProfileRecord.role` is the raw, untrusted string as stored. Parse it
with `domain.parse_role` before making decisions on it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol


@dataclass(frozen=True)
class ProfileRecord:
    uid: str
    email: str
    display_name: str
    role: str
    roll_number: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None
    class_id: Optional[str] = None


class ProfileStore(Protocol):
    async def get(self, uid: str) -> Optional[ProfileRecord]: ...

    async def put(self, record: ProfileRecord) -> None: ...

    async def find_by_roll_number(self, roll_number: str) -> Optional[ProfileRecord]: ...

    async def exists_with_role(self, role: str) -> bool: ...


class InMemoryProfileStore:
    def __init__(self) -> None:
        self._data: Dict[str, ProfileRecord] = {}

    async def get(self, uid: str) -> Optional[ProfileRecord]:
        return self._data.get(uid)

    async def put(self, record: ProfileRecord) -> None:
        self._data[record.uid] = record

    async def find_by_roll_number(self, roll_number: str) -> Optional[ProfileRecord]:
        needle = (roll_number or "").strip()
        if not needle:
            return None
        for rec in self._data.values():
            if rec.roll_number == needle:
                return rec
        return None

    async def exists_with_role(self, role: str) -> bool:
        wanted = (role or "").strip().lower()
        return any((rec.role or "").strip().lower() == wanted for rec in self._data.values())
