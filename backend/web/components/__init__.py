# Campus Component System
# Pure Python Components for type-safe HTML generation

from .base import Component
from .layout import Layout
from .loading import LoadingPage, RoleUnavailablePage
from .navigation import Navigation, menu_for

__all__ = [
    "Component",
    "Layout",
    "LoadingPage",
    "RoleUnavailablePage",
    "Navigation",
    "menu_for",
]
