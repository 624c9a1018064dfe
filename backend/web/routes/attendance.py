"""
Attendance routes: teachers mark attendance, students read their statistics.

Permissions:
    - `POST /api/attendance/classes/{class_id}`: teacher or admin (route is
      role-scoped in the navigation guard; checked again here).
    - `GET /api/attendance/me`, `GET /attendance`: any signed-in user with a
      known role; statistics are always the caller's own.
"""

from __future__ import annotations

from typing import List
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from backend.academics.attendance import AttendanceEntry, AttendanceError, AttendanceStats
from backend.identity_access.domain import Role
from backend.web.components import Component, Layout

attendance_router = APIRouter(tags=["Attendance"])
logger = logging.getLogger("campus.web.attendance")

MARKING_ROLES = {Role.TEACHER.value, Role.ADMIN.value}


class AttendanceEntryPayload(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=128)
    student_name: str = Field(default="", max_length=200)
    present: bool


class MarkAttendancePayload(BaseModel):
    date: str = Field(..., min_length=10, max_length=10)  # YYYY-MM-DD
    subject: str = Field(..., max_length=100)
    records: List[AttendanceEntryPayload] = Field(default_factory=list)


def _private_response(body: dict, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _require_user(request: Request, roles: set[str] | None = None):
    user = getattr(request.state, "user", None)
    if not user:
        return None, _private_response({"error": "unauthenticated"}, status_code=401)
    if roles is not None and user.get("role") not in roles:
        return None, _private_response({"error": "forbidden"}, status_code=403)
    return user, None


async def _own_stats(user: dict) -> AttendanceStats:
    from backend.web import main as mod

    profile = await mod.PROFILES.get(user["uid"])
    # No class assigned: attendance is marked against the department.
    class_id = (profile.class_id or profile.department) if profile is not None else None
    return await mod.ATTENDANCE.stats_for(user["uid"], class_id)


@attendance_router.post("/api/attendance/classes/{class_id}")
async def mark_attendance(request: Request, class_id: str, payload: MarkAttendancePayload):
    """Record attendance for one class, subject and date.

    Responses:
        201 `{"created": n}`; 400 `{"error": code}` for empty batches, a
        missing subject or an invalid date.
    """
    from backend.web import main as mod

    user, error = _require_user(request, MARKING_ROLES)
    if error:
        return error
    entries = [AttendanceEntry(student_id=e.student_id, student_name=e.student_name, present=e.present) for e in payload.records]
    try:
        created = await mod.ATTENDANCE.mark_attendance(
            class_id=class_id,
            date=payload.date,
            subject=payload.subject,
            entries=entries,
            marked_by=user["uid"],
        )
    except AttendanceError as exc:
        return _private_response({"error": exc.code}, status_code=400)
    return _private_response({"created": len(created)}, status_code=201)


@attendance_router.get("/api/attendance/me")
async def my_attendance(request: Request):
    user, error = _require_user(request)
    if error:
        return error
    stats = await _own_stats(user)
    return _private_response(stats.as_dict())


def _stats_table(stats: AttendanceStats) -> str:
    if not stats.subject_wise:
        return '<p class="text-muted">No attendance has been recorded yet.</p>'
    rows = "".join(
        f"<tr><td>{Component.escape(subject)}</td><td>{s.present}</td><td>{s.absent}</td>"
        f"<td>{s.classes_held or s.total}</td><td>{s.percentage}%</td></tr>"
        for subject, s in sorted(stats.subject_wise.items())
    )
    return f"""
        <p>Overall: <strong>{stats.overall_percentage}%</strong> ({stats.present_classes} of {stats.total_classes})</p>
        <table class="table attendance-table">
            <thead><tr><th>Subject</th><th>Present</th><th>Absent</th><th>Classes</th><th>Percentage</th></tr></thead>
            <tbody>{rows}</tbody>
        </table>"""


@attendance_router.get("/attendance", response_class=HTMLResponse)
async def attendance_page(request: Request):
    user, error = _require_user(request)
    if error:
        return error
    if user.get("role") in MARKING_ROLES:
        body = """
        <p>Submit attendance for a class with <code>POST /api/attendance/classes/{class_id}</code>.</p>"""
    else:
        body = _stats_table(await _own_stats(user))
    content = f"""
    <div class="container">
        <h1>Attendance</h1>
        {body}
    </div>
    """
    layout = Layout(title="Attendance", content=content, user=user, current_path=request.url.path)
    html = layout.render_fragment() if request.headers.get("HX-Request") else layout.render()
    return HTMLResponse(html, headers={"Cache-Control": "private, no-store"})
