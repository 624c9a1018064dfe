"""
`/api/me` reports the session the way the navigation guard sees it.
"""
from __future__ import annotations

import asyncio

import pytest

from backend.identity_access.profiles import InMemoryProfileStore
from backend.web import main
from utils.accounts import create_user, login_settled, make_client, portal_of, settle

pytestmark = pytest.mark.anyio


async def test_me_for_resolved_student():
    identity = await create_user("asha@campus.test", "student", display_name="Asha")
    async with make_client() as client:
        await login_settled(client, "asha@campus.test")
        r = await client.get("/api/me")
    assert r.status_code == 200
    body = r.json()
    assert body["uid"] == identity.uid
    assert body["email"] == "asha@campus.test"
    assert body["name"] == "Asha"
    assert body["role"] == "student"
    assert body["phase"] == "resolved"
    assert body["resolving"] is False
    assert body["transitioning"] is False
    assert body["expires_at"] is not None
    assert r.headers["Cache-Control"] == "private, no-store"


async def test_me_name_defaults_to_email_local_part():
    await create_user("meera@campus.test", "teacher")
    async with make_client() as client:
        await login_settled(client, "meera@campus.test")
        r = await client.get("/api/me")
    assert r.json()["name"] == "meera"


async def test_me_for_unrecognised_role():
    await create_user("typo@campus.test", "Teecher")
    async with make_client() as client:
        await login_settled(client, "typo@campus.test")
        r = await client.get("/api/me")
    body = r.json()
    assert body["role"] == "unresolved"
    assert body["phase"] == "awaiting_role"
    assert body["resolving"] is False


async def test_me_without_ttl_has_no_expiry(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(main.SESSION_STORE, "ttl_seconds", 0)
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        await login_settled(client, "asha@campus.test")
        r = await client.get("/api/me")
    assert r.json()["expires_at"] is None


class _HoldNewAccounts(InMemoryProfileStore):
    """Profile lookups for anyone but the known uids wait for the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.known = set()
        self.gate = asyncio.Event()

    async def get(self, uid):
        if uid not in self.known:
            await self.gate.wait()
        return await super().get(uid)


async def test_me_reports_the_anchor_while_transitioning(monkeypatch: pytest.MonkeyPatch):
    store = _HoldNewAccounts()
    monkeypatch.setattr(main, "PROFILES", store)
    monkeypatch.setattr(main.SESSION_STORE, "profiles", store)
    admin = await create_user("admin@campus.test", "admin")
    store.known.add(admin.uid)

    async with make_client() as client:
        await login_settled(client, "admin@campus.test")
        portal = portal_of(client)
        portal.transition.begin()
        # Creating an account signs it in; its role lookup is still running.
        await portal.auth.create_account("new@campus.test", "secret-pass")
        assert portal.snapshot.resolving
        r = await client.get("/api/me")
        store.gate.set()
        portal.transition.end()
        await settle(client)

    body = r.json()
    assert body["uid"] == admin.uid
    assert body["role"] == "admin"
    assert body["phase"] == "resolved"
    assert body["resolving"] is False
    assert body["transitioning"] is True
