"""
Identity source: accounts, password sign-in and per-browser auth sessions.

Why: The portal treats the authentication service as an external collaborator
with a fixed contract. `IdentityProvider` is the in-process stand-in for that
service (shared account directory backed by an `AccountStore`); `AuthSession`
is what a single browser session sees of it: a current identity plus a change
stream.

Contract (mirrors hosted auth SDKs):
- `subscribe(callback)` fires immediately with the current identity and then
  on every sign-in/sign-out; it returns an unsubscribe handle.
- `create_account` signs the new account in as a side effect. Admin
  provisioning relies on the transition coordinator to hide that.

Security: Passwords are stored as bcrypt hashes (salt embedded in the hash).
bcrypt only reads the first 72 bytes of a password; longer input is truncated
on hashing and on verification alike. Never log emails together with
passwords.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol
import logging
import re
import uuid

import bcrypt

logger = logging.getLogger("campus.identity_access")

IdentityCallback = Callable[[Optional["Identity"]], None]

MIN_PASSWORD_LENGTH = 6
DEFAULT_BCRYPT_ROUNDS = 12
_BCRYPT_MAX_BYTES = 72
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class IdentityError(Exception):
    """Raised when an identity operation is rejected."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    display_name: str = ""


@dataclass(frozen=True)
class AccountRecord:
    uid: str
    email: str
    display_name: str
    password_hash: str

    @property
    def identity(self) -> Identity:
        return Identity(uid=self.uid, email=self.email, display_name=self.display_name)


class AccountStore(Protocol):
    async def get_by_email(self, email: str) -> Optional[AccountRecord]: ...

    async def put(self, record: AccountRecord) -> None: ...


class InMemoryAccountStore:
    """Account directory for development and tests (lost on restart)."""

    def __init__(self) -> None:
        self._data: Dict[str, AccountRecord] = {}

    async def get_by_email(self, email: str) -> Optional[AccountRecord]:
        return self._data.get(email)

    async def put(self, record: AccountRecord) -> None:
        self._data[record.email] = record


def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_password(password: str, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    password_bytes = (password or "").encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store: treat as a failed check.
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


class IdentityProvider:
    """Account directory shared by all auth sessions.

    Parameters
    ----------
    accounts:
        Where accounts live. Defaults to an `InMemoryAccountStore`; production
        passes `accounts_db.DBAccountStore`.
    bcrypt_rounds:
        bcrypt cost factor for new hashes (`BCRYPT_ROUNDS`).
    """

    def __init__(self, accounts: Optional[AccountStore] = None, *, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self.accounts: AccountStore = accounts if accounts is not None else InMemoryAccountStore()
        self.bcrypt_rounds = bcrypt_rounds

    async def register(self, *, email: str, password: str, display_name: str = "") -> Identity:
        normalized = _normalize_email(email)
        if not is_email(normalized):
            raise IdentityError("invalid_email")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise IdentityError("weak_password")
        if await self.accounts.get_by_email(normalized) is not None:
            raise IdentityError("email_already_in_use")
        record = AccountRecord(
            uid=uuid.uuid4().hex,
            email=normalized,
            display_name=(display_name or "").strip(),
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
        )
        await self.accounts.put(record)
        logger.info("Account registered uid=%s", record.uid[-6:])
        return record.identity

    async def authenticate(self, *, email: str, password: str) -> Identity:
        account = await self.accounts.get_by_email(_normalize_email(email))
        if account is None:
            raise IdentityError("invalid_credentials")
        if not verify_password(password, account.password_hash):
            raise IdentityError("invalid_credentials")
        return account.identity


class AuthSession:
    """Identity stream of a single browser session."""

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self._current: Optional[Identity] = None
        self._subscribers: List[IdentityCallback] = []

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        callback(self._current)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def sign_in(self, email: str, password: str) -> Identity:
        identity = await self._provider.authenticate(email=email, password=password)
        self._emit(identity)
        return identity

    async def sign_out(self) -> None:
        self._emit(None)

    async def create_account(self, email: str, password: str, display_name: str = "") -> Identity:
        identity = await self._provider.register(email=email, password=password, display_name=display_name)
        # Side effect of the hosted SDK we model: the new account is now signed in.
        self._emit(identity)
        return identity

    async def reauthenticate(self, password: str) -> Identity:
        """Check the current account's password without changing the session."""
        if self._current is None:
            raise IdentityError("not_signed_in")
        return await self._provider.authenticate(email=self._current.email, password=password)

    def _emit(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for callback in list(self._subscribers):
            callback(identity)


__all__ = [
    "AccountRecord",
    "AccountStore",
    "AuthSession",
    "Identity",
    "IdentityError",
    "IdentityProvider",
    "InMemoryAccountStore",
    "MIN_PASSWORD_LENGTH",
    "hash_password",
    "is_email",
    "verify_password",
]
