"""
Sign-in and sign-out through the HTML form.
"""
from __future__ import annotations

import pytest

from backend.identity_access.domain import Role
from backend.web import main
from utils.accounts import create_user, login, login_settled, make_client, portal_of

pytestmark = pytest.mark.anyio


async def test_login_form_renders_and_keeps_inapp_redirect():
    async with make_client() as client:
        r = await client.get("/auth/login", params={"redirect": "/attendance"})
        r_evil = await client.get("/auth/login", params={"redirect": "https://evil.example/"})
    assert r.status_code == 200
    assert 'name="identifier"' in r.text
    assert 'name="redirect" value="/attendance"' in r.text
    assert "evil.example" not in r_evil.text


async def test_login_with_email_sets_cookie_and_redirects_root():
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        r = await login(client, "asha@campus.test")
        assert r.status_code == 303
        assert r.headers["location"] == "/"
        set_cookie = r.headers.get("set-cookie", "")
        assert f"{main.SESSION_COOKIE_NAME}=" in set_cookie
        assert "httponly" in set_cookie.lower()
        assert "samesite=lax" in set_cookie.lower()
        snapshot = await portal_of(client).coordinator.settled()
    assert snapshot.role is Role.STUDENT
    assert len(main.SESSION_STORE) == 1


async def test_login_with_roll_number():
    await create_user("ravi@campus.test", "student", roll_number="CS-007", class_id="cs-2a")
    async with make_client() as client:
        snapshot = await login_settled(client, "CS-007")
        r = await client.get("/", follow_redirects=False)
    assert snapshot.identity.email == "ravi@campus.test"
    assert r.headers["location"] == "/dashboard"


@pytest.mark.parametrize("identifier, password", [
    ("asha@campus.test", "wrong-pass"),
    ("nobody@campus.test", "secret-pass"),
    ("NO-SUCH-ROLL", "secret-pass"),
    ("", "secret-pass"),
])
async def test_bad_credentials_rerender_form_without_session(identifier, password):
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        r = await login(client, identifier, password)
    assert r.status_code == 400
    assert "Invalid email/roll number or password." in r.text
    assert main.SESSION_COOKIE_NAME not in r.headers.get("set-cookie", "")
    assert len(main.SESSION_STORE) == 0


async def test_login_redirect_honors_inapp_target_only():
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        r_ok = await login(client, "asha@campus.test", redirect="/attendance")
    async with make_client() as client:
        r_evil = await login(client, "asha@campus.test", redirect="//evil.example/x")
    assert r_ok.headers["location"] == "/attendance"
    assert r_evil.headers["location"] == "/"


async def test_htmx_login_uses_hx_redirect():
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        r = await client.post(
            "/auth/login",
            data={"identifier": "asha@campus.test", "password": "secret-pass"},
            headers={"HX-Request": "true"},
        )
    assert r.status_code == 204
    assert r.headers["HX-Redirect"] == "/"


async def test_second_login_reuses_session_and_switches_account():
    await create_user("asha@campus.test", "student")
    await create_user("meera@campus.test", "teacher")
    async with make_client() as client:
        await login_settled(client, "asha@campus.test")
        first = portal_of(client)
        snapshot = await login_settled(client, "meera@campus.test")
        assert portal_of(client) is first
        r = await client.get("/", follow_redirects=False)
    assert snapshot.role is Role.TEACHER
    assert r.headers["location"] == "/teacher"
    assert len(main.SESSION_STORE) == 1


async def test_logout_clears_session_and_cookie():
    await create_user("asha@campus.test", "student")
    async with make_client() as client:
        await login_settled(client, "asha@campus.test")
        r = await client.get("/auth/logout", follow_redirects=False)
        r_after = await client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/login"
    assert r.headers["Cache-Control"] == "private, no-store"
    assert len(main.SESSION_STORE) == 0
    assert r_after.status_code == 302
    assert r_after.headers["location"] == "/auth/login"


async def test_logout_without_session_is_noop_redirect():
    async with make_client() as client:
        r = await client.get("/auth/logout", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/login"


async def test_prod_cookie_is_secure_with_max_age():
    await create_user("asha@campus.test", "student")
    main.SETTINGS.override_environment("prod")
    async with make_client() as client:
        r = await login(client, "asha@campus.test")
    set_cookie = r.headers.get("set-cookie", "").lower()
    assert "secure" in set_cookie
    assert "max-age=3600" in set_cookie


async def test_retry_without_session_just_redirects():
    async with make_client() as client:
        r = await client.get("/auth/retry", params={"redirect": "https://evil.example"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
