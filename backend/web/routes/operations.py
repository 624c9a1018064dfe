"""Operations endpoints (session introspection for the UI and operators)."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from backend.identity_access.session_state import SIGNED_OUT

operations_router = APIRouter(tags=["Operations"])


def _private_response(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


@operations_router.get("/api/me")
async def get_me(request: Request):
    """
    Return the caller's session as the navigation guard sees it.

    Permissions:
        Signed-in callers (auth via campus_session). The guard answers 401 for
        signed-out callers before this handler runs.
    """
    from backend.web import main as mod

    portal = getattr(request.state, "portal", None)
    snapshot = portal.snapshot if portal is not None else SIGNED_OUT
    user = getattr(request.state, "user", None)
    if not user:
        return _private_response({"error": "unauthenticated"}, status_code=401)
    guard_state = mod.GUARD.state_for(snapshot)
    # Same view the guard decides on: the anchor while a transition runs.
    view = snapshot.anchor if (snapshot.transitioning and snapshot.anchor is not None) else snapshot
    exp_iso = (
        datetime.fromtimestamp(portal.expires_at, tz=timezone.utc).isoformat(timespec="seconds")
        if portal is not None and portal.expires_at
        else None
    )
    return _private_response(
        {
            "uid": user["uid"],
            "email": user["email"],
            "name": user["name"],
            "role": guard_state.role.value,
            "phase": guard_state.phase.value,
            "resolving": view.resolving,
            "transitioning": snapshot.transitioning,
            "expires_at": exp_iso,
        },
        status_code=200,
    )
