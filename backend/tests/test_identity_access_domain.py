"""
Role parsing and home routes.

Profile role strings are untrusted: only the three known roles (case and
whitespace aside) may ever become a concrete `Role`.
"""
from __future__ import annotations

import pytest

from backend.identity_access.domain import HOME_ROUTES, Role, home_for, parse_role


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("student", Role.STUDENT),
        ("Teacher", Role.TEACHER),
        ("  ADMIN \n", Role.ADMIN),
    ],
)
def test_parse_role_accepts_known_roles_case_insensitively(raw, expected):
    assert parse_role(raw) is expected


@pytest.mark.parametrize("raw", ["Teecher", "teachers", "", "unresolved", "root", None, 3, ["admin"]])
def test_parse_role_never_guesses(raw):
    assert parse_role(raw) is Role.UNRESOLVED


def test_home_routes_are_dedicated_per_role():
    assert home_for(Role.STUDENT) == "/dashboard"
    assert home_for(Role.TEACHER) == "/teacher"
    assert home_for(Role.ADMIN) == "/admin"
    assert len(set(HOME_ROUTES.values())) == 3


def test_home_for_unresolved_raises():
    with pytest.raises(ValueError):
        home_for(Role.UNRESOLVED)


def test_display_role_falls_back_to_student_only_for_unresolved():
    assert Role.UNRESOLVED.display_role() is Role.STUDENT
    assert Role.ADMIN.display_role() is Role.ADMIN
    assert not Role.UNRESOLVED.is_resolved
