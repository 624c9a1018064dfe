"""
Admin provisioning: create a student/teacher account while staying signed in.

Why: Creating an account through the identity source signs that account in.
The workflow therefore runs inside a transition and restores the admin's
identity before the transition ends, on success and on failure alike.

Behavior:
    1. Verify the admin's password first (no side effects on failure).
    2. Inside `transition()`: create the account (signs it in), write its
       profile, then sign the admin back in (`finally`).
    3. The transition ends only after the admin identity is current again.

Permissions: The caller must already be a resolved admin; the web route is
role-scoped and checks again.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import logging

from .domain import Role
from .identity import AuthSession, IdentityError
from .profiles import ProfileRecord, ProfileStore
from .transition import TransitionCoordinator

logger = logging.getLogger("campus.identity_access")

PROVISIONABLE_ROLES = frozenset({Role.STUDENT, Role.TEACHER})


@dataclass(frozen=True)
class NewAccount:
    email: str
    password: str
    display_name: str
    role: Role
    roll_number: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None
    class_id: Optional[str] = None


async def _restore_admin(auth: AuthSession, admin_uid: str, admin_email: str, admin_password: str) -> None:
    current = auth.current
    if current is not None and current.uid == admin_uid:
        return
    if current is not None:
        await auth.sign_out()
    await auth.sign_in(admin_email, admin_password)


async def provision_account(
    *,
    auth: AuthSession,
    profiles: ProfileStore,
    transition: TransitionCoordinator,
    account: NewAccount,
    admin_password: str,
) -> ProfileRecord:
    """Create an account plus profile and return the stored profile.

    Raises `IdentityError` for rejected credentials or account data; the admin
    stays (or is put back) signed in whenever their password was valid.
    """
    if account.role not in PROVISIONABLE_ROLES:
        raise IdentityError("invalid_role")
    admin = await auth.reauthenticate(admin_password)

    with transition.transition():
        try:
            created = await auth.create_account(account.email, account.password, account.display_name)
            record = ProfileRecord(
                uid=created.uid,
                email=created.email,
                display_name=created.display_name,
                role=account.role.value,
                roll_number=(account.roll_number or "").strip() or None,
                department=(account.department or "").strip() or None,
                year=(account.year or "").strip() or None,
                class_id=(account.class_id or "").strip() or None,
            )
            await profiles.put(record)
            await auth.sign_out()
        finally:
            await _restore_admin(auth, admin.uid, admin.email, admin_password)

    logger.info("Provisioned %s account uid=%s", account.role.value, record.uid[-6:])
    return record
