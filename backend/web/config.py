"""
Configuration and startup security checks for the campus portal.

Why: Role-gated navigation is only as strong as the profile data behind it.
This module reads the handful of settings the portal needs and provides a
single guard that refuses obviously insecure production deployments without
burdening local development.

Permissions: The caller needs no special privileges. The functions simply read
environment variables; `ensure_secure_config_on_startup` raises `SystemExit`
on fatal misconfiguration.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import os

PROFILES_BACKENDS = ("memory", "db")
MIN_PROD_BOOTSTRAP_PASSWORD_LENGTH = 12


@dataclass(frozen=True)
class PortalConfig:
    environment: str
    role_resolution_timeout_seconds: int
    session_ttl_seconds: int
    profiles_backend: str  # "memory" | "db"
    database_url: Optional[str]
    bootstrap_admin_email: Optional[str]
    bootstrap_admin_password: Optional[str]
    bcrypt_rounds: int = 12


def _int_env(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < lo or value > hi:
        raise ValueError(f"{name} out of range ({lo}..{hi}), got: {value}")
    return value


def _opt_env(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def load_portal_config() -> PortalConfig:
    """Parse and validate portal settings from environment variables.

    Behavior:
        - `ROLE_RESOLUTION_TIMEOUT_SECONDS`: 1..30, default 8.
        - `SESSION_TTL_SECONDS`: 60..86400, default 3600.
        - `PROFILES_BACKEND`: "memory" (default) or "db"; selects where both
          accounts and profiles live.
        - `BCRYPT_ROUNDS`: 4..16, default 12.
    """
    backend = (os.getenv("PROFILES_BACKEND") or "memory").strip().lower()
    if backend not in PROFILES_BACKENDS:
        raise ValueError("PROFILES_BACKEND must be 'memory' or 'db'")
    return PortalConfig(
        environment=(os.getenv("CAMPUS_ENV") or "dev").strip().lower(),
        role_resolution_timeout_seconds=_int_env("ROLE_RESOLUTION_TIMEOUT_SECONDS", 8, lo=1, hi=30),
        session_ttl_seconds=_int_env("SESSION_TTL_SECONDS", 3600, lo=60, hi=86400),
        profiles_backend=backend,
        database_url=_opt_env("DATABASE_URL"),
        bootstrap_admin_email=_opt_env("CAMPUS_BOOTSTRAP_ADMIN_EMAIL"),
        bootstrap_admin_password=_opt_env("CAMPUS_BOOTSTRAP_ADMIN_PASSWORD"),
        bcrypt_rounds=_int_env("BCRYPT_ROUNDS", 12, lo=4, hi=16),
    )


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - Accounts and profiles must come from the database (in-memory data
      vanishes on restart and would orphan every profile).
    - DATABASE_URL must be set and must not explicitly disable TLS.
    - The bootstrap admin is optional. When configured, both variables must be
      set and the password must be at least 12 characters; it is only seeded
      while no admin profile exists (see `main.seed_bootstrap_admin`).
    """

    env = os.getenv("CAMPUS_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Profiles backend
    backend = (os.getenv("PROFILES_BACKEND") or "memory").strip().lower()
    if backend != "db":
        raise SystemExit(
            "Refusing to start: PROFILES_BACKEND must be 'db' in production/staging."
        )

    # 2) Postgres DSN present and not explicitly without TLS
    dsn = (os.getenv("DATABASE_URL") or "").strip()
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is unset in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 3) First-admin bootstrap: complete and strong, or absent
    email = _opt_env("CAMPUS_BOOTSTRAP_ADMIN_EMAIL")
    password = _opt_env("CAMPUS_BOOTSTRAP_ADMIN_PASSWORD")
    if bool(email) != bool(password):
        raise SystemExit(
            "Refusing to start: set both CAMPUS_BOOTSTRAP_ADMIN_EMAIL and CAMPUS_BOOTSTRAP_ADMIN_PASSWORD, or neither."
        )
    if password and len(password) < MIN_PROD_BOOTSTRAP_PASSWORD_LENGTH:
        raise SystemExit(
            f"Refusing to start: CAMPUS_BOOTSTRAP_ADMIN_PASSWORD must be at least {MIN_PROD_BOOTSTRAP_PASSWORD_LENGTH} characters in production/staging."
        )
