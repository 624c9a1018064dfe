"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend (role lookups run as asyncio
tasks) and give every test fresh in-memory stores so sessions, accounts and
profiles never leak between tests.
"""
import sys
from pathlib import Path

import pytest

# Ensure the repository root is importable as `backend.*` across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep config-driven behavior deterministic (dev defaults) per test."""
    for var in (
        "CAMPUS_ENV",
        "PROFILES_BACKEND",
        "ROLE_RESOLUTION_TIMEOUT_SECONDS",
        "SESSION_TTL_SECONDS",
        "BCRYPT_ROUNDS",
        "CAMPUS_BOOTSTRAP_ADMIN_EMAIL",
        "CAMPUS_BOOTSTRAP_ADMIN_PASSWORD",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_portal_stores(monkeypatch: pytest.MonkeyPatch):
    """Replace the app's identity provider, profiles, sessions and attendance.

    Why:
        `backend.web.main` holds module-level singletons. Without a reset,
        accounts and sessions created by one test change guard decisions in
        the next.
    """
    from backend.academics.attendance import AttendanceBook
    from backend.identity_access.identity import IdentityProvider
    from backend.identity_access.profiles import InMemoryProfileStore
    from backend.identity_access.stores import PortalSessionStore
    from backend.web import main

    provider = IdentityProvider(bcrypt_rounds=4)
    profiles = InMemoryProfileStore()
    sessions = PortalSessionStore(provider=provider, profiles=profiles, timeout_seconds=2, ttl_seconds=3600)
    monkeypatch.setattr(main, "PROVIDER", provider)
    monkeypatch.setattr(main, "PROFILES", profiles)
    monkeypatch.setattr(main, "SESSION_STORE", sessions)
    monkeypatch.setattr(main, "ATTENDANCE", AttendanceBook())
    main.SETTINGS.override_environment(None)
    yield
    main.SETTINGS.override_environment(None)
