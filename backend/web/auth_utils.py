"""
Shared authentication utilities.

Why:
    Avoid duplicating environment-dependent cookie policy logic across modules
    (e.g., main app and auth router).

Design:
    The helper is framework-agnostic and pure: it accepts an environment string
    and returns the corresponding cookie flags. Callers decide where the
    environment comes from (e.g., settings object).
"""

from __future__ import annotations


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags for the session cookie.

    Returns a mapping with keys:
      - secure: True outside dev/test (local HTTP development must still work)
      - samesite: "lax"  # cookie is sent on top-level navigations only
      - httponly: True
      - path: "/"
    """
    env = (environment or "").lower()
    secure = env not in {"dev", "test"}
    return {"secure": secure, "samesite": "lax", "httponly": True, "path": "/"}
