"""
Admin account provisioning routes.

Why:
    Admins create student and teacher accounts from inside the portal. The
    identity source signs every newly created account in, so provisioning
    runs inside a transition (see `identity_access.provisioning`) and the
    admin never sees the intermediate identities.

Permissions:
    Admin only. The navigation guard scopes `/admin` to admins; handlers check
    the role again before touching any store.
"""

from __future__ import annotations

from typing import Optional
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from backend.identity_access.domain import Role
from backend.identity_access.identity import IdentityError
from backend.identity_access.profiles import ProfileRecord
from backend.identity_access.provisioning import NewAccount, provision_account
from backend.web.components import Component, Layout

admin_router = APIRouter(tags=["Admin"])
logger = logging.getLogger("campus.web.admin")

ERROR_DETAILS = {
    "invalid_email": "Please enter a valid email address.",
    "weak_password": "The password must be at least 6 characters long.",
    "email_already_in_use": "An account with this email already exists.",
    "invalid_credentials": "Your admin password is incorrect.",
    "not_signed_in": "Your session has ended. Please sign in again.",
    "invalid_role": "Accounts can only be created for students or teachers.",
}

_FIELDS = ("email", "password", "display_name", "roll_number", "department", "year", "class_id", "admin_password")
_SECRET_FIELDS = frozenset({"password", "admin_password"})


def _private_json(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _require_admin(request: Request):
    user = getattr(request.state, "user", None)
    if not user:
        return None, _private_json({"error": "unauthenticated"}, status_code=401)
    if user.get("role") != Role.ADMIN.value:
        return None, _private_json({"error": "forbidden"}, status_code=403)
    return user, None


def _wants_json(request: Request) -> bool:
    return (request.headers.get("content-type") or "").lower().startswith("application/json")


async def _read_payload(request: Request) -> dict:
    if _wants_json(request):
        try:
            data = await request.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
    else:
        data = dict(await request.form())
    payload = {}
    for name in _FIELDS:
        raw = str(data.get(name) or "")
        # Passwords are taken verbatim.
        payload[name] = raw if name in _SECRET_FIELDS else raw.strip()
    return payload


def _account_form(role: Role, action: str, values: Optional[dict] = None) -> str:
    values = values or {}
    esc = Component.escape

    def field(name: str, label: str, kind: str = "text", required: bool = False) -> str:
        value = "" if kind == "password" else values.get(name, "")
        attrs = Component.attributes(id=f"{role.value}-{name}", name=name, type=kind, value=value or None, required=required)
        return f'<label for="{role.value}-{name}">{esc(label)}</label><input {attrs}>'

    if role is Role.STUDENT:
        extra = "".join(
            [
                field("roll_number", "Roll number"),
                field("department", "Department"),
                field("year", "Year"),
                field("class_id", "Class"),
            ]
        )
    else:
        extra = field("department", "Department")
    return f"""
        <form method="post" action="{action}" class="admin-form" id="create-{role.value}-form">
            {field("display_name", "Full name", required=True)}
            {field("email", "Email", "email", required=True)}
            {field("password", "Initial password", "password", required=True)}
            {extra}
            {field("admin_password", "Your admin password", "password", required=True)}
            <button type="submit" class="btn btn-primary">Create {esc(role.value)}</button>
        </form>"""


def _render_page(request: Request, *, message: Optional[str] = None, error: Optional[str] = None, values: Optional[dict] = None, failed_role: Optional[Role] = None, status_code: int = 200) -> HTMLResponse:
    notice = ""
    if error:
        notice = f'<div class="alert alert-error" role="alert">{Component.escape(error)}</div>'
    elif message:
        notice = f'<div class="alert alert-success" role="status">{Component.escape(message)}</div>'
    student_values = values if failed_role is Role.STUDENT else None
    teacher_values = values if failed_role is Role.TEACHER else None
    content = f"""
    <div class="container">
        <h1>Manage accounts</h1>
        {notice}
        <section class="card" aria-labelledby="create-student-heading">
            <h2 id="create-student-heading">Add student</h2>
            {_account_form(Role.STUDENT, "/admin/students", student_values)}
        </section>
        <section class="card" aria-labelledby="create-teacher-heading">
            <h2 id="create-teacher-heading">Add teacher</h2>
            {_account_form(Role.TEACHER, "/admin/teachers", teacher_values)}
        </section>
    </div>
    """
    layout = Layout(title="Students", content=content, user=request.state.user, current_path="/admin/students")
    body = layout.render_fragment() if request.headers.get("HX-Request") else layout.render()
    return HTMLResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _record_json(record: ProfileRecord) -> dict:
    return {
        "uid": record.uid,
        "email": record.email,
        "displayName": record.display_name,
        "role": record.role,
        "rollNumber": record.roll_number,
        "department": record.department,
        "year": record.year,
        "classId": record.class_id,
    }


async def _provision(request: Request, role: Role):
    from backend.web import main as mod

    _, error = _require_admin(request)
    if error:
        return error
    portal = request.state.portal
    payload = await _read_payload(request)
    account = NewAccount(
        email=payload["email"],
        password=payload["password"],
        display_name=payload["display_name"],
        role=role,
        roll_number=payload["roll_number"] if role is Role.STUDENT else None,
        department=payload["department"],
        year=payload["year"] if role is Role.STUDENT else None,
        class_id=payload["class_id"] if role is Role.STUDENT else None,
    )
    try:
        record = await provision_account(
            auth=portal.auth,
            profiles=mod.PROFILES,
            transition=portal.transition,
            account=account,
            admin_password=payload["admin_password"],
        )
    except IdentityError as exc:
        logger.info("Provisioning %s rejected: %s", role.value, exc.code)
        detail = ERROR_DETAILS.get(exc.code, "The account could not be created.")
        if _wants_json(request):
            return _private_json({"error": exc.code, "detail": detail}, status_code=400)
        return _render_page(request, error=detail, values=payload, failed_role=role, status_code=400)

    if _wants_json(request):
        return _private_json(_record_json(record), status_code=201)
    return _render_page(request, message=f"Created {role.value} account for {record.email}.")


@admin_router.get("/admin/students", response_class=HTMLResponse)
async def admin_students_page(request: Request):
    """Render the account forms (student and teacher)."""
    _, error = _require_admin(request)
    if error:
        return error
    return _render_page(request)


@admin_router.post("/admin/students")
async def admin_create_student(request: Request):
    """Create a student account plus profile (form or JSON body).

    Responses:
        201 JSON / 200 HTML on success; 400 with `error` code on rejection.
    """
    return await _provision(request, Role.STUDENT)


@admin_router.post("/admin/teachers")
async def admin_create_teacher(request: Request):
    return await _provision(request, Role.TEACHER)
