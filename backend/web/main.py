"Campus portal"
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging
import os
import sys
from urllib.parse import urlencode

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from backend.identity_access.domain import LOGIN_ROUTE, Role
from backend.identity_access.guard import Decision, DecisionKind, NavigationGuard
from backend.identity_access.identity import AccountStore, IdentityError, IdentityProvider, InMemoryAccountStore
from backend.identity_access.profiles import InMemoryProfileStore, ProfileRecord, ProfileStore
from backend.identity_access.session import PortalSession
from backend.identity_access.session_state import SIGNED_OUT, SessionSnapshot
from backend.identity_access.stores import PortalSessionStore
from backend.academics.attendance import AttendanceBook
from backend.web import config as _cfg
from backend.web.auth_utils import cookie_opts
from backend.web.components import Layout, LoadingPage, RoleUnavailablePage


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via CAMPUS_ENABLE_DOTENV (default true outside
      pytest).
    """
    if _under_pytest():
        return False
    flag = (os.getenv("CAMPUS_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------


class PortalSettings:
    def __init__(self, config: _cfg.PortalConfig) -> None:
        self.config = config
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return self.config.environment

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("campus.web")
SETTINGS = PortalSettings(_cfg.load_portal_config())
SESSION_COOKIE_NAME = "campus_session"
RETRY_AFTER_SECONDS = 2


def _build_profile_store(config: _cfg.PortalConfig) -> ProfileStore:
    if (not _under_pytest()) and config.profiles_backend == "db":
        from backend.identity_access.profiles_db import DBProfileStore

        return DBProfileStore(dsn=config.database_url)
    return InMemoryProfileStore()


def _build_account_store(config: _cfg.PortalConfig) -> AccountStore:
    if (not _under_pytest()) and config.profiles_backend == "db":
        from backend.identity_access.accounts_db import DBAccountStore

        return DBAccountStore(dsn=config.database_url)
    return InMemoryAccountStore()


PROVIDER = IdentityProvider(_build_account_store(SETTINGS.config), bcrypt_rounds=SETTINGS.config.bcrypt_rounds)
PROFILES: ProfileStore = _build_profile_store(SETTINGS.config)
SESSION_STORE = PortalSessionStore(
    provider=PROVIDER,
    profiles=PROFILES,
    timeout_seconds=SETTINGS.config.role_resolution_timeout_seconds,
    ttl_seconds=SETTINGS.config.session_ttl_seconds,
)
GUARD = NavigationGuard()
ATTENDANCE = AttendanceBook()


async def seed_bootstrap_admin(provider: IdentityProvider, profiles: ProfileStore, *, email: str, password: str) -> Optional[ProfileRecord]:
    """Create the first admin account and profile.

    Returns the stored profile, or None when an admin profile already exists
    or the email is taken. Safe to run on every startup.
    """
    if await profiles.exists_with_role(Role.ADMIN.value):
        logger.info("Bootstrap admin skipped: an admin profile exists")
        return None
    try:
        identity = await provider.register(email=email, password=password, display_name="Administrator")
    except IdentityError as exc:
        if exc.code == "email_already_in_use":
            return None
        raise
    record = ProfileRecord(uid=identity.uid, email=identity.email, display_name=identity.display_name, role=Role.ADMIN.value)
    await profiles.put(record)
    logger.info("Bootstrap admin created uid=%s", identity.uid[-6:])
    return record


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = SETTINGS.config
    if cfg.bootstrap_admin_email and cfg.bootstrap_admin_password:
        await seed_bootstrap_admin(PROVIDER, PROFILES, email=cfg.bootstrap_admin_email, password=cfg.bootstrap_admin_password)
    yield


app = FastAPI(title="Campus", description="College campus portal", version="0.1.0", lifespan=lifespan)

# --- Auth Helpers & Middleware --------------------------------------------------

_NO_STORE = {"Cache-Control": "private, no-store"}


def _session_cookie_options() -> dict:
    return cookie_opts(SETTINGS.environment)


def _set_session_cookie(response: Response, value: str, *, max_age: int | None = None) -> None:
    opts = _session_cookie_options()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=opts["httponly"],
        secure=opts["secure"],
        samesite=opts["samesite"],
        path=opts["path"],
        max_age=max_age,
    )


def _clear_session_cookie(response: Response) -> None:
    opts = _session_cookie_options()
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path=opts["path"],
        secure=opts["secure"],
        httponly=opts["httponly"],
        samesite=opts["samesite"],
    )


def _lookup_portal(request: Request) -> Optional[PortalSession]:
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    try:
        return SESSION_STORE.get(sid)
    except Exception as exc:
        logger.warning("Session store get failed: %s", exc.__class__.__name__)
        return None


def _user_context(snapshot: SessionSnapshot) -> Optional[Dict[str, Any]]:
    """Read-only user view for handlers; frozen at the anchor while transitioning."""
    view = snapshot.anchor if (snapshot.transitioning and snapshot.anchor is not None) else snapshot
    if view.identity is None:
        return None
    return {
        "uid": view.identity.uid,
        "email": view.identity.email,
        "name": view.identity.display_name or view.identity.email.split("@")[0],
        "role": view.role.value,
    }


def _is_bypass_path(path: str) -> bool:
    return path.startswith("/static/") or path in ("/health", "/favicon.ico")


def _is_api_path(path: str) -> bool:
    return path.startswith("/api/")


def _layout_response(
    request: Request,
    layout: Layout,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> HTMLResponse:
    """Render Layout with HTMX-aware semantics and return an HTMLResponse.

    Behavior:
        - Returns the fragment plus an out-of-band sidebar when `HX-Request`
          is present, otherwise the complete document.
        - Personalized pages default to `Cache-Control: private, no-store`.
        - Merges caller-provided headers onto the response.
    """
    if request.headers.get("HX-Request"):
        body = layout.render_fragment()
    else:
        body = layout.render()
    response = HTMLResponse(content=body, status_code=status_code)
    if getattr(request.state, "user", None) and not (headers and "Cache-Control" in headers):
        response.headers["Cache-Control"] = "private, no-store"
    if headers:
        for key, value in headers.items():
            response.headers[key] = value
    return response


def _redirect_response(request: Request, location: str) -> Response:
    to_login = location == LOGIN_ROUTE
    if _is_api_path(request.url.path):
        if to_login:
            return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=_NO_STORE)
        return JSONResponse({"error": "forbidden"}, status_code=403, headers=_NO_STORE)
    if "HX-Request" in request.headers:
        # Security: prevent intermediaries from caching guard responses
        return Response(
            status_code=401 if to_login else 200,
            headers={"HX-Redirect": location, "Cache-Control": "private, no-store", "Vary": "HX-Request"},
        )
    response = RedirectResponse(url=location, status_code=302)
    response.headers["Cache-Control"] = "private, no-store"
    return response


def _pending_response(request: Request, snapshot: SessionSnapshot) -> Response:
    view = snapshot.anchor if (snapshot.transitioning and snapshot.anchor is not None) else snapshot
    resolving = view.resolving
    if _is_api_path(request.url.path):
        return JSONResponse(
            {"error": "role_pending"},
            status_code=503,
            headers={"Cache-Control": "private, no-store", "Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    page = LoadingPage(resolving=resolving, retry_path=request.url.path)
    layout = Layout(title="Loading", content=page.render(), user=request.state.user, show_nav=False, current_path=request.url.path)
    headers = dict(_NO_STORE)
    if resolving:
        headers["Refresh"] = str(RETRY_AFTER_SECONDS)
    return _layout_response(request, layout, headers=headers)


def _unavailable_response(request: Request) -> Response:
    if _is_api_path(request.url.path):
        return JSONResponse(
            {"error": "role_unavailable"},
            status_code=503,
            headers={"Cache-Control": "private, no-store", "Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    retry = "/auth/retry?" + urlencode({"redirect": request.url.path})
    page = RoleUnavailablePage(retry_path=retry)
    layout = Layout(title="Unavailable", content=page.render(), user=request.state.user, show_nav=False, current_path=request.url.path)
    return _layout_response(request, layout, status_code=503, headers=dict(_NO_STORE))


def render_decision(request: Request, decision: Decision, snapshot: SessionSnapshot) -> Optional[Response]:
    """Translate a non-ALLOW guard decision into a response; None means proceed."""
    if decision.kind is DecisionKind.ALLOW:
        return None
    if decision.kind is DecisionKind.REDIRECT:
        return _redirect_response(request, decision.location or LOGIN_ROUTE)
    if decision.kind is DecisionKind.UNAVAILABLE:
        return _unavailable_response(request)
    return _pending_response(request, snapshot)


@app.middleware("http")
async def guard_enforcement(request: Request, call_next):
    path = request.url.path
    if _is_bypass_path(path):
        return await call_next(request)

    portal = _lookup_portal(request)
    snapshot = portal.snapshot if portal is not None else SIGNED_OUT
    # Expose minimal, read-only session context for downstream handlers.
    request.state.portal = portal
    request.state.user = _user_context(snapshot)

    decision = GUARD.evaluate(snapshot, path)
    response = render_decision(request, decision, snapshot)
    if response is not None:
        return response
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    if SETTINGS.environment == "prod":
        # Harden CSP in production: avoid 'unsafe-inline' to reduce XSS surface.
        csp = "default-src 'self'; script-src 'self'; style-src 'self'; img-src 'self' data:; connect-src 'self';"
    else:
        csp = (
            "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; connect-src 'self';"
        )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Placeholder Pages ----------------------------------------------------------

PLACEHOLDER_PAGES: Dict[str, str] = {
    "/dashboard": "Dashboard",
    "/teacher": "Teacher Home",
    "/admin": "Admin Home",
    "/assignments": "Assignments",
    "/calendar": "Calendar",
    "/timetable": "Time Table",
    "/marks": "Marks",
    "/library": "Library",
    "/exams": "Exams",
    "/announcements": "Announcements",
    "/documents": "Documents",
    "/chat": "Discussion",
    "/placements": "Placements",
    "/transport": "Transport",
    "/fees": "Fees",
    "/profile": "Profile",
    "/settings": "Settings",
}


def _placeholder_page(title: str):
    async def page(request: Request):
        content = f"""
    <div class="container">
        <h1>{Layout.escape(title)}</h1>
        <p>This section is coming soon.</p>
    </div>
    """
        layout = Layout(title=title, content=content, user=request.state.user, current_path=request.url.path)
        return _layout_response(request, layout)

    return page


for _path, _title in PLACEHOLDER_PAGES.items():
    app.add_api_route(_path, _placeholder_page(_title), methods=["GET"], response_class=HTMLResponse, name=f"page:{_path}")

# --- Routers ----------------------------------------------------------------------

from backend.web.routes.auth import auth_router  # noqa: E402
from backend.web.routes.admin import admin_router  # noqa: E402
from backend.web.routes.attendance import attendance_router  # noqa: E402
from backend.web.routes.operations import operations_router  # noqa: E402

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(attendance_router)
app.include_router(operations_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})
