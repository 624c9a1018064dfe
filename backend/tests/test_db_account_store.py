"""
DBAccountStore against an in-memory psycopg stand-in.
"""
from __future__ import annotations

import pytest

from backend.identity_access import accounts_db
from backend.identity_access.accounts_db import DBAccountStore
from backend.identity_access.identity import AccountRecord, AuthSession, IdentityError, IdentityProvider
from utils.fake_psycopg import install_fake_psycopg

DSN = "postgresql://campus_app:pw@localhost:5432/campus"


def test_requires_dsn(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        DBAccountStore()


@pytest.mark.parametrize("table", ["", "9accounts", "public.user-accounts", "a.b.c"])
def test_rejects_invalid_table_names(table):
    with pytest.raises(ValueError):
        DBAccountStore(dsn=DSN, table=table)


@pytest.mark.anyio
async def test_put_and_get_by_email(monkeypatch: pytest.MonkeyPatch):
    table, log = install_fake_psycopg(monkeypatch, accounts_db, key_index=1)
    store = DBAccountStore(dsn=DSN)
    record = AccountRecord(uid="uid-asha", email="asha@campus.test", display_name="Asha", password_hash="$2b$04$hash")

    await store.put(record)
    assert table["asha@campus.test"][0] == "uid-asha"
    assert await store.get_by_email("asha@campus.test") == record
    assert await store.get_by_email("nobody@campus.test") is None
    assert len(log) == 3
    assert accounts_db.psycopg.dsns == [DSN] * 3


@pytest.mark.anyio
async def test_accounts_survive_a_new_provider(monkeypatch: pytest.MonkeyPatch):
    install_fake_psycopg(monkeypatch, accounts_db, key_index=1)
    store = DBAccountStore(dsn=DSN)
    created = await IdentityProvider(store, bcrypt_rounds=4).register(email="Asha@Campus.test", password="secret-pass")

    # A restarted process builds a fresh provider over the same table.
    session = AuthSession(IdentityProvider(DBAccountStore(dsn=DSN), bcrypt_rounds=4))
    identity = await session.sign_in("asha@campus.test", "secret-pass")
    assert identity.uid == created.uid

    with pytest.raises(IdentityError) as excinfo:
        await IdentityProvider(store, bcrypt_rounds=4).register(email="asha@campus.test", password="other-pass")
    assert excinfo.value.code == "email_already_in_use"
