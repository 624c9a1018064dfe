"""
Base class for the portal's server-rendered UI components.

Components are plain Python objects with a `render()` method returning HTML.
All user-provided text must pass through `escape()`.
"""

from typing import Any, Optional
import html


class Component:
    """Base class for all UI components."""

    def render(self) -> str:
        raise NotImplementedError("Subclasses must implement render()")

    @staticmethod
    def escape(text: Optional[Any]) -> str:
        """Escape HTML entities; `None` renders as an empty string."""
        return html.escape(str(text)) if text is not None else ""

    @staticmethod
    def classes(*args: str, **conditionals: bool) -> str:
        """Build a CSS class string, e.g. `classes("link", active=True)` -> "link active"."""
        names = list(args)
        names.extend(key for key, value in conditionals.items() if value)
        return " ".join(names)

    @staticmethod
    def attributes(**attrs: Any) -> str:
        """Build an HTML attribute string.

        A trailing underscore is dropped (`class_` -> `class`), inner
        underscores become hyphens (`aria_current` -> `aria-current`), `True`
        renders a boolean attribute, `False`/`None` are skipped.
        """
        result = []
        for key, value in attrs.items():
            if key.endswith("_"):
                key = key[:-1]
            else:
                key = key.replace("_", "-")
            if value is True:
                result.append(key)
            elif value is not False and value is not None:
                result.append(f'{key}="{html.escape(str(value))}"')
        return " ".join(result)
