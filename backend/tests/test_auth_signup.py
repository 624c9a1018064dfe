"""
Self sign-up: the account is created and signed in, then waits for an
administrator to assign a role.
"""
from __future__ import annotations

import pytest

from backend.web import main
from utils.accounts import create_user, make_client, portal_of, settle

pytestmark = pytest.mark.anyio


def _form(email: str = "new@campus.test", password: str = "secret-pass", display_name: str = "Nina") -> dict:
    return {"display_name": display_name, "email": email, "password": password}


async def test_signup_form_renders_and_login_links_to_it():
    async with make_client() as client:
        r_form = await client.get("/auth/signup")
        r_login = await client.get("/auth/login")
    assert r_form.status_code == 200
    assert 'action="/auth/signup"' in r_form.text
    assert 'name="display_name"' in r_form.text
    assert r_form.headers["Cache-Control"] == "private, no-store"
    assert 'href="/auth/signup"' in r_login.text


async def test_signup_signs_in_and_lands_on_contact_admin_page():
    async with make_client() as client:
        r = await client.post("/auth/signup", data=_form(), follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/"
        assert client.cookies.get(main.SESSION_COOKIE_NAME)

        snapshot = await settle(client)
        r_root = await client.get("/", follow_redirects=False)
        r_teacher = await client.get("/teacher", follow_redirects=False)
        r_shared = await client.get("/dashboard", follow_redirects=False)
        r_me = await client.get("/api/me")

    assert snapshot.identity.display_name == "Nina"
    assert r_root.status_code == 200
    assert "contact an administrator" in r_root.text
    assert "Refresh" not in r_root.headers
    assert "contact an administrator" in r_teacher.text
    assert r_shared.status_code == 200
    body = r_me.json()
    assert body["name"] == "Nina"
    assert body["role"] == "unresolved"
    assert body["phase"] == "awaiting_role"
    assert body["resolving"] is False


async def test_signed_up_account_can_sign_in_again():
    async with make_client() as client:
        await client.post("/auth/signup", data=_form(email="Nina@Campus.test"), follow_redirects=False)
    account = await main.PROVIDER.authenticate(email="nina@campus.test", password="secret-pass")
    assert account.display_name == "Nina"


@pytest.mark.parametrize(
    "data, message",
    [
        (_form(email="not-an-email"), "Enter a valid email address."),
        (_form(password="12345"), "Password must be at least 6 characters."),
    ],
)
async def test_invalid_signup_rerenders_form(data, message):
    async with make_client() as client:
        r = await client.post("/auth/signup", data=data, follow_redirects=False)
    assert r.status_code == 400
    assert message in r.text
    assert 'value="Nina"' in r.text
    assert 'value="12345"' not in r.text
    assert main.SESSION_COOKIE_NAME not in r.headers.get("set-cookie", "")


async def test_signup_with_taken_email_keeps_existing_account():
    existing = await create_user("asha@campus.test", "student")
    async with make_client() as client:
        r = await client.post("/auth/signup", data=_form(email="asha@campus.test"), follow_redirects=False)
        assert portal_of(client) is None
    assert r.status_code == 400
    assert "An account with this email already exists." in r.text
    assert (await main.PROFILES.get(existing.uid)).role == "student"
