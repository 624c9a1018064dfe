"""
Navigation Component for the campus portal

Role-based sidebar that adapts to the user type (student/teacher/admin).
Menus are presentational only: the navigation guard decides what may be
shown, so an unresolved role simply gets the student menu here.
"""

from typing import Any, Dict, List, Optional, Tuple

from backend.identity_access.domain import Role, parse_role
from .base import Component

NavItem = Tuple[str, str]  # (href, label)

NAV_CONFIG: Dict[Role, List[NavItem]] = {
    Role.TEACHER: [
        ("/teacher", "Teacher Home"),
        ("/assignments", "Assignments"),
        ("/announcements", "Announcements"),
        ("/attendance", "Attendance"),
        ("/marks", "Marks"),
        ("/calendar", "Calendar"),
        ("/timetable", "Time Table"),
        ("/chat", "Discussion"),
        ("/settings", "Settings"),
    ],
    Role.ADMIN: [
        ("/admin", "Admin Home"),
        ("/admin/students", "Students"),
        ("/announcements", "Announcements"),
        ("/fees", "Fees"),
        ("/placements", "Placements"),
        ("/transport", "Transport"),
        ("/documents", "Documents"),
        ("/settings", "Settings"),
    ],
    Role.STUDENT: [
        ("/dashboard", "Dashboard"),
        ("/attendance", "Attendance"),
        ("/assignments", "Assignments"),
        ("/calendar", "Calendar"),
        ("/timetable", "Time Table"),
        ("/marks", "Marks"),
        ("/library", "Library"),
        ("/exams", "Exams"),
        ("/announcements", "Announcements"),
        ("/documents", "Documents"),
        ("/chat", "Discussion"),
        ("/placements", "Placements"),
        ("/transport", "Transport"),
        ("/fees", "Fees"),
        ("/profile", "Profile"),
        ("/settings", "Settings"),
    ],
}

ROLE_LABELS = {
    Role.STUDENT: "Student",
    Role.TEACHER: "Teacher",
    Role.ADMIN: "Administrator",
}


def menu_for(role: Role) -> List[NavItem]:
    return NAV_CONFIG[role.display_role()]


class Navigation(Component):
    """Sidebar with role-based menu items"""

    def __init__(self, user: Optional[Dict[str, Any]] = None, current_path: str = "/"):
        """
        Args:
            user: User dict with 'name' and 'role' keys (optional)
            current_path: The current URL path for active link highlighting
        """
        self.user = user
        self.current_path = current_path

    def render(self) -> str:
        return self.render_aside()

    def render_aside(self, oob: bool = False) -> str:
        oob_attr = ' hx-swap-oob="true"' if oob else ""
        if not self.user:
            items = self._create_nav_link("/auth/login", "Sign in", is_active=self.current_path.startswith("/auth"))
            footer = ""
        else:
            role = parse_role(self.user.get("role"))
            items = self._render_items(menu_for(role)) + self._render_logout()
            footer = f"""
            <div class="sidebar-footer">
                <div class="user-name">{self.escape(self.user.get("name", ""))}</div>
                <div class="user-role">{self.escape(self._role_label(role))}</div>
            </div>"""
        return f"""
    <aside class="sidebar" id="sidebar" aria-label="Sidebar"{oob_attr}>
        <nav class="sidebar-nav" role="navigation" aria-label="Main navigation">
            <div class="sidebar-header"><span class="sidebar-title">Campus</span></div>
            <div class="sidebar-items">
                {items}
            </div>{footer}
        </nav>
    </aside>"""

    def _render_items(self, items: List[NavItem]) -> str:
        active = self._active_href(items)
        return "".join(self._create_nav_link(href, label, is_active=(href == active)) for href, label in items)

    def _active_href(self, items: List[NavItem]) -> Optional[str]:
        """Best prefix match, so /admin/students does not also light up /admin."""
        path = self.current_path or "/"
        best: Optional[str] = None
        for href, _label in items:
            if path == href or path.startswith(href + "/"):
                if best is None or len(href) > len(best):
                    best = href
        return best

    def _create_nav_link(self, href: str, text: str, is_active: bool = False) -> str:
        attrs = self.attributes(
            href=href,
            class_=self.classes("sidebar-link", active=is_active),
            aria_current="page" if is_active else None,
        )
        return f"""
                <a {attrs}><span class="nav-text">{self.escape(text)}</span></a>"""

    def _render_logout(self) -> str:
        # Full page navigation: logout drops the server session and cookie.
        return """
                <a href="/auth/logout" class="sidebar-link sidebar-logout"><span class="nav-text">Sign out</span></a>"""

    @staticmethod
    def _role_label(role: Role) -> str:
        return ROLE_LABELS.get(role, "Signing in")
