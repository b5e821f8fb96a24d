"""
Identity primitives: principal validation, role precedence, session store.
"""
from __future__ import annotations

import pytest

import backend.identity_access.stores as stores
from backend.identity_access.domain import Principal, primary_role
from backend.identity_access.stores import SessionStore


def test_principal_validates_role_and_id():
    assert Principal(id="u1", role="teacher").can_author
    assert not Principal(id="u2", role="student").can_author
    with pytest.raises(ValueError):
        Principal(id="u3", role="superuser")
    with pytest.raises(ValueError):
        Principal(id="", role="student")


@pytest.mark.parametrize(
    "roles,expected",
    [
        (["student"], "student"),
        (["student", "teacher"], "teacher"),
        (["teacher", "admin", "student"], "admin"),
        (["guest"], None),
        ([], None),
    ],
)
def test_primary_role_picks_highest(roles, expected):
    assert primary_role(roles) == expected


def test_session_resolves_to_principal():
    store = SessionStore()
    rec = store.create(sub="s-1", name="Sam", roles=["student"])
    principal = store.get(rec.session_id).principal()
    assert principal == Principal(id="s-1", role="student")
    store.delete(rec.session_id)
    assert store.get(rec.session_id) is None


def test_session_without_known_role_has_no_principal():
    store = SessionStore()
    rec = store.create(sub="x", roles=["guest"])
    assert store.get(rec.session_id).principal() is None


def test_expired_session_is_dropped(monkeypatch):
    store = SessionStore()
    monkeypatch.setattr(stores, "_now", lambda: 1_000)
    rec = store.create(sub="s-1", roles=["student"], ttl_seconds=60)
    monkeypatch.setattr(stores, "_now", lambda: 1_061)
    assert store.get(rec.session_id) is None
