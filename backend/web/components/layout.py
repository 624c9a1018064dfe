"""
Layout Component for the campus portal

Main layout wrapper that combines navigation and page content into a complete
HTML page.
"""

from typing import Any, Dict, Optional

from .base import Component
from .navigation import Navigation


class Layout(Component):
    """Main layout component that assembles the complete page"""

    def __init__(
        self,
        title: str,
        content: str,
        user: Optional[Dict[str, Any]] = None,
        show_nav: bool = True,
        current_path: str = "/",
    ):
        """
        Args:
            title: Page title (will be escaped)
            content: Main content HTML (pre-rendered components)
            user: Current user dict (optional)
            show_nav: Whether to show navigation (default: True)
            current_path: Current URL path for active navigation highlighting
        """
        self.title = title
        self.content = content
        self.user = user
        self.show_nav = show_nav
        self.current_path = current_path

    def render(self) -> str:
        nav_html = Navigation(self.user, self.current_path).render() if self.show_nav else ""
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{self.escape(self.title)} - Campus</title>
    <script src="/static/js/htmx.min.js"></script>
</head>
<body>
    {nav_html}
    <main id="main-content" class="main-content" role="main">
        {self.content}
    </main>
</body>
</html>"""

    def render_fragment(self) -> str:
        """Return the `<main>` children plus an out-of-band sidebar for HTMX swaps.

        The sidebar is swapped as well because the menu depends on the role,
        which may have changed since the page was first rendered.
        """
        if not self.show_nav:
            return self.content
        sidebar_oob = Navigation(self.user, self.current_path).render_aside(oob=True)
        return f"{self.content}{sidebar_oob}"
