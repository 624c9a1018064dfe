"""
Session State reducer: sign-out clears the role, stale lookups are discarded,
and transitions snapshot the pre-transition view.
"""
from __future__ import annotations

from dataclasses import replace

import pytest

from backend.identity_access.domain import Role
from backend.identity_access.identity import Identity
from backend.identity_access.resolver import Resolution
from backend.identity_access.session_state import (
    IdentityChanged,
    RoleResolved,
    SessionSnapshot,
    SessionState,
    TransitionBegan,
    TransitionEnded,
    reduce,
)

ALICE = Identity(uid="uid-alice-000001", email="alice@campus.test")
BOB = Identity(uid="uid-bob-000002", email="bob@campus.test")


def _signed_in(identity: Identity, role: Role) -> SessionSnapshot:
    s = reduce(SessionSnapshot(), IdentityChanged(identity))
    return reduce(s, RoleResolved(epoch=s.epoch, role=role))


def test_initial_snapshot_is_unknown_identity():
    s = SessionSnapshot()
    assert s.identity is None
    assert not s.identity_known
    assert s.role is Role.UNRESOLVED


def test_identity_change_starts_resolution_and_bumps_epoch():
    s = reduce(SessionSnapshot(), IdentityChanged(ALICE))
    assert s.identity == ALICE
    assert s.identity_known
    assert s.resolving
    assert s.role is Role.UNRESOLVED
    assert s.epoch == 1


@pytest.mark.parametrize("role", [Role.STUDENT, Role.TEACHER, Role.ADMIN, Role.UNRESOLVED])
def test_sign_out_clears_role_in_same_update(role):
    s = _signed_in(ALICE, role)
    out = reduce(s, IdentityChanged(None))
    assert out.identity is None
    assert out.role is Role.UNRESOLVED
    assert not out.resolving


def test_stale_resolution_is_discarded_after_identity_change():
    s = reduce(SessionSnapshot(), IdentityChanged(ALICE))
    alice_epoch = s.epoch
    s = reduce(s, IdentityChanged(BOB))

    after_stale = reduce(s, RoleResolved(epoch=alice_epoch, role=Role.ADMIN))
    assert after_stale is s
    assert after_stale.role is Role.UNRESOLVED

    final = reduce(after_stale, RoleResolved(epoch=s.epoch, role=Role.STUDENT))
    assert final.identity == BOB
    assert final.role is Role.STUDENT
    assert not final.resolving


def test_same_account_signing_in_again_still_discards_older_lookup():
    s = reduce(SessionSnapshot(), IdentityChanged(ALICE))
    first = s.epoch
    s = reduce(s, IdentityChanged(None))
    s = reduce(s, IdentityChanged(ALICE))
    assert reduce(s, RoleResolved(epoch=first, role=Role.TEACHER)) is s


def test_resolution_after_sign_out_is_ignored():
    s = reduce(SessionSnapshot(), IdentityChanged(ALICE))
    epoch = s.epoch
    s = reduce(s, IdentityChanged(None))
    assert reduce(s, RoleResolved(epoch=epoch, role=Role.ADMIN)).role is Role.UNRESOLVED


def test_timed_out_resolution_is_flagged():
    s = reduce(SessionSnapshot(), IdentityChanged(ALICE))
    s = reduce(s, RoleResolved(epoch=s.epoch, role=Role.UNRESOLVED, timed_out=True))
    assert s.role_timed_out
    assert not s.resolving


def test_transition_began_keeps_anchor_without_nesting():
    s = _signed_in(ALICE, Role.ADMIN)
    t = reduce(s, TransitionBegan())
    assert t.transitioning
    assert t.anchor == replace(s, anchor=None)
    assert reduce(t, TransitionBegan()) is t


def test_transition_ended_carries_role_for_same_account_still_resolving():
    s = _signed_in(ALICE, Role.ADMIN)
    s = reduce(s, TransitionBegan())
    s = reduce(s, IdentityChanged(BOB))
    s = reduce(s, IdentityChanged(None))
    s = reduce(s, IdentityChanged(ALICE))
    ended = reduce(s, TransitionEnded())
    assert not ended.transitioning
    assert ended.anchor is None
    assert ended.role is Role.ADMIN
    assert ended.resolving


def test_transition_ended_with_other_account_does_not_carry_role():
    s = _signed_in(ALICE, Role.ADMIN)
    s = reduce(s, TransitionBegan())
    s = reduce(s, IdentityChanged(BOB))
    ended = reduce(s, TransitionEnded())
    assert ended.identity == BOB
    assert ended.role is Role.UNRESOLVED


def test_transition_ended_without_transition_is_noop():
    s = _signed_in(ALICE, Role.STUDENT)
    assert reduce(s, TransitionEnded()) is s


def test_unknown_event_raises():
    with pytest.raises(TypeError):
        reduce(SessionSnapshot(), object())  # type: ignore[arg-type]


def test_session_state_publishes_changes_and_reports_stale_results():
    state = SessionState()
    seen = []
    unsubscribe = state.subscribe(seen.append)

    state.identity_changed(ALICE)
    old_epoch = state.snapshot.epoch
    state.identity_changed(BOB)
    assert state.role_resolved(old_epoch, Resolution(Role.ADMIN)) is False
    assert state.role_resolved(state.snapshot.epoch, Resolution(Role.TEACHER)) is True

    assert [s.identity for s in seen] == [ALICE, BOB, BOB]
    assert seen[-1].role is Role.TEACHER

    unsubscribe()
    state.identity_changed(None)
    assert len(seen) == 3


def test_failing_subscriber_does_not_break_dispatch():
    state = SessionState()

    def boom(_snapshot):
        raise RuntimeError("subscriber bug")

    state.subscribe(boom)
    state.identity_changed(ALICE)
    assert state.snapshot.identity == ALICE
