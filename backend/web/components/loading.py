"""
Placeholder pages shown while navigation is held back.

`LoadingPage` is rendered for a PENDING guard decision: the user is signed in
but the role is not known yet. When no lookup is outstanding any more (no
profile, or a role value we do not recognise) the page says so instead of
spinning forever. `RoleUnavailablePage` is rendered after a lookup timeout.
"""

from .base import Component


class LoadingPage(Component):
    def __init__(self, *, resolving: bool = True, retry_path: str = "/"):
        self.resolving = resolving
        self.retry_path = retry_path

    def render(self) -> str:
        if self.resolving:
            return """
        <section class="card loading" role="status" aria-live="polite" aria-busy="true">
            <h1>Loading your account…</h1>
            <p>This page refreshes automatically.</p>
        </section>"""
        return f"""
        <section class="card loading" role="status">
            <h1>Your account is not set up yet</h1>
            <p>We could not find a valid role for your account. Please contact an administrator.</p>
            <p><a href="{self.escape(self.retry_path)}">Try again</a> · <a href="/auth/logout">Sign out</a></p>
        </section>"""


class RoleUnavailablePage(Component):
    def __init__(self, *, retry_path: str = "/"):
        self.retry_path = retry_path

    def render(self) -> str:
        return f"""
        <section class="card role-unavailable" role="alert">
            <h1>Your account could not be loaded</h1>
            <p>The profile service did not answer in time.</p>
            <p><a href="{self.escape(self.retry_path)}">Try again</a> · <a href="/auth/logout">Sign out</a></p>
        </section>"""
