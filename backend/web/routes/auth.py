"""
Authentication-related FastAPI routes (router-only module).

Why:
    Keep sign-in/sign-out endpoints in a dedicated router. The identity
    source is in-process (`IdentityProvider`); each browser gets its own
    `PortalSession` behind the `campus_session` cookie.

Notes:
    - This module imports from `main` inside functions to reuse the shared
      session store, profile store and cookie helpers.
    - Sign-in accepts an email address or a student roll number. Roll numbers
      are mapped to the account email through the profile store.
    - Self sign-up creates an account only. The role comes from the profile an
      administrator assigns, so a new account waits on the "contact an
      administrator" page until then.
"""

from __future__ import annotations

from typing import Optional
import logging
import re

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from backend.identity_access.identity import MIN_PASSWORD_LENGTH, IdentityError, is_email
from backend.web.components import Component, Layout

auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("campus.web.auth")

# Single source of truth for allowed in-app redirect paths
# Disallow double slashes and path traversal (".."), allow dots in names
INAPP_PATH_PATTERN = re.compile(r"^(?!.*//)(?!.*\.\.)/[A-Za-z0-9._\-/]*$")
MAX_INAPP_REDIRECT_LEN = 256

LOGIN_ERROR_MESSAGE = "Invalid email/roll number or password."
SIGNUP_ERROR_MESSAGES = {
    "invalid_email": "Enter a valid email address.",
    "weak_password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
    "email_already_in_use": "An account with this email already exists.",
}


def _is_inapp_path(value: Optional[str]) -> bool:
    """Return True if value is an absolute in-app path, e.g., "/", "/attendance".

    Examples (rejected): "attendance", "https://evil.com", "//evil.com", "/a?b", "/.."
    """
    if not value or not isinstance(value, str):
        return False
    if len(value) > MAX_INAPP_REDIRECT_LEN:
        return False
    return bool(INAPP_PATH_PATTERN.match(value))


def _login_form(*, redirect: Optional[str], identifier: str = "", error: Optional[str] = None) -> str:
    error_html = f'<div class="alert alert-error" role="alert">{Component.escape(error)}</div>' if error else ""
    redirect_html = (
        f'<input type="hidden" name="redirect" value="{Component.escape(redirect)}">' if _is_inapp_path(redirect) else ""
    )
    return f"""
    <div class="container auth-container">
        <h1>Sign in</h1>
        {error_html}
        <form method="post" action="/auth/login" class="auth-form">
            <label for="identifier">Email or roll number</label>
            <input id="identifier" name="identifier" type="text" autocomplete="username" required value="{Component.escape(identifier)}">
            <label for="password">Password</label>
            <input id="password" name="password" type="password" autocomplete="current-password" required>
            {redirect_html}
            <button type="submit" class="btn btn-primary">Sign in</button>
        </form>
        <p class="auth-alt">No account yet? <a href="/auth/signup">Create an account</a></p>
    </div>
    """


def _render_login(request: Request, *, redirect: Optional[str], identifier: str = "", error: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    layout = Layout(
        title="Sign in",
        content=_login_form(redirect=redirect, identifier=identifier, error=error),
        user=None,
        show_nav=False,
        current_path="/auth/login",
    )
    return HTMLResponse(layout.render(), status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _signup_form(*, display_name: str = "", email: str = "", error: Optional[str] = None) -> str:
    error_html = f'<div class="alert alert-error" role="alert">{Component.escape(error)}</div>' if error else ""
    return f"""
    <div class="container auth-container">
        <h1>Create your account</h1>
        {error_html}
        <form method="post" action="/auth/signup" class="auth-form">
            <label for="display_name">Full name</label>
            <input id="display_name" name="display_name" type="text" autocomplete="name" value="{Component.escape(display_name)}">
            <label for="email">Email</label>
            <input id="email" name="email" type="email" autocomplete="email" required value="{Component.escape(email)}">
            <label for="password">Password</label>
            <input id="password" name="password" type="password" autocomplete="new-password" minlength="{MIN_PASSWORD_LENGTH}" required>
            <button type="submit" class="btn btn-primary">Create account</button>
        </form>
        <p class="auth-alt">Already have an account? <a href="/auth/login">Sign in</a></p>
    </div>
    """


def _render_signup(*, display_name: str = "", email: str = "", error: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    layout = Layout(
        title="Create account",
        content=_signup_form(display_name=display_name, email=email, error=error),
        user=None,
        show_nav=False,
        current_path="/auth/signup",
    )
    return HTMLResponse(layout.render(), status_code=status_code, headers={"Cache-Control": "private, no-store"})


async def _email_for_identifier(profiles, identifier: str) -> Optional[str]:
    value = (identifier or "").strip()
    if not value:
        return None
    if is_email(value):
        return value
    record = await profiles.find_by_roll_number(value)
    return record.email if record is not None else None


@auth_router.get("/auth/login", response_class=HTMLResponse)
async def auth_login_form(request: Request, redirect: str | None = None):
    """Render the sign-in form.

    Permissions:
        Public. Only in-app `redirect` targets are carried through the form.
    """
    return _render_login(request, redirect=redirect)


@auth_router.post("/auth/login")
async def auth_login(request: Request):
    """Sign in with email or roll number and password.

    Behavior:
        - Reuses the caller's portal session or creates a new one.
        - On success: 303 to the validated `redirect` (default "/"), which the
          navigation guard turns into the role's home once the role is known.
          HTMX callers receive `HX-Redirect` instead.
        - On failure: 400 with the form re-rendered and a generic error.
    Security:
        The error never reveals whether the account exists.
    """
    from backend.web import main as mod

    form = await request.form()
    identifier = str(form.get("identifier") or "")
    password = str(form.get("password") or "")
    redirect = str(form.get("redirect") or "") or None

    email = await _email_for_identifier(mod.PROFILES, identifier)
    portal = getattr(request.state, "portal", None)
    created = portal is None
    if created:
        portal = mod.SESSION_STORE.create()
    try:
        if email is None:
            raise IdentityError("invalid_credentials")
        identity = await portal.auth.sign_in(email, password)
    except IdentityError as exc:
        logger.info("Sign-in rejected: %s", exc.code)
        if created:
            mod.SESSION_STORE.delete(portal.session_id)
        return _render_login(request, redirect=redirect, identifier=identifier, error=LOGIN_ERROR_MESSAGE, status_code=400)

    logger.info("Signed in uid=%s", identity.uid[-6:])
    dest = redirect if _is_inapp_path(redirect) else "/"
    headers = {"Cache-Control": "private, no-store", "Vary": "HX-Request"}
    if request.headers.get("HX-Request"):
        headers["HX-Redirect"] = dest
        resp: Response = Response(status_code=204, headers=headers)
    else:
        resp = RedirectResponse(url=dest, status_code=303, headers=headers)
    max_age = mod.SESSION_STORE.ttl_seconds if mod.SETTINGS.environment == "prod" else None
    mod._set_session_cookie(resp, portal.session_id, max_age=max_age)
    return resp


@auth_router.get("/auth/logout")
async def auth_logout(request: Request):
    """Sign out, drop the server-side session and expire the cookie.

    Permissions:
        Public; logging out without a session is a no-op redirect to login.
    Security:
        Adds `Cache-Control: private, no-store` to the 302 response.
    """
    from backend.web import main as mod

    portal = getattr(request.state, "portal", None)
    if portal is not None:
        try:
            await portal.auth.sign_out()
        finally:
            mod.SESSION_STORE.delete(portal.session_id)
    resp = RedirectResponse(url="/auth/login", status_code=302)
    resp.headers["Cache-Control"] = "private, no-store"
    mod._clear_session_cookie(resp)
    return resp


@auth_router.get("/auth/retry")
async def auth_retry_role(request: Request, redirect: str | None = None):
    """Re-issue the role lookup after it timed out, then return to `redirect`."""
    portal = getattr(request.state, "portal", None)
    if portal is not None and portal.coordinator.retry():
        logger.info("Role lookup retried")
    dest = redirect if _is_inapp_path(redirect) else "/"
    return RedirectResponse(url=dest, status_code=302, headers={"Cache-Control": "private, no-store"})


@auth_router.get("/auth/signup", response_class=HTMLResponse)
async def auth_signup_form(request: Request):
    """Render the account creation form. Public."""
    return _render_signup()


@auth_router.post("/auth/signup")
async def auth_signup(request: Request):
    """Create an account with a display name and sign it in.

    Behavior:
        - Reuses the caller's portal session or creates a new one.
        - On success: 303 to "/". The account has no profile yet, so the guard
          shows the "contact an administrator" page until a role is assigned.
        - On failure: 400 with the form re-rendered (password never echoed).
    """
    from backend.web import main as mod

    form = await request.form()
    display_name = str(form.get("display_name") or "").strip()
    email = str(form.get("email") or "").strip()
    password = str(form.get("password") or "")

    portal = getattr(request.state, "portal", None)
    created = portal is None
    if created:
        portal = mod.SESSION_STORE.create()
    try:
        identity = await portal.auth.create_account(email, password, display_name)
    except IdentityError as exc:
        logger.info("Sign-up rejected: %s", exc.code)
        if created:
            mod.SESSION_STORE.delete(portal.session_id)
        message = SIGNUP_ERROR_MESSAGES.get(exc.code, "Could not create the account.")
        return _render_signup(display_name=display_name, email=email, error=message, status_code=400)

    logger.info("Account created via sign-up uid=%s", identity.uid[-6:])
    resp = RedirectResponse(url="/", status_code=303, headers={"Cache-Control": "private, no-store"})
    max_age = mod.SESSION_STORE.ttl_seconds if mod.SETTINGS.environment == "prod" else None
    mod._set_session_cookie(resp, portal.session_id, max_age=max_age)
    return resp
