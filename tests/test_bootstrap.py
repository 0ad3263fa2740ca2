"""Unit tests for api.main.bootstrap_admin -- the settings-driven first admin."""

from __future__ import annotations

from api.main import bootstrap_admin
from auth.models import Provider, Role, User
from auth.passwords import verify_password


def test_creates_admin(user_store):
    assert bootstrap_admin(user_store, "root@x.com", "rootpass") is True

    admin = user_store.get_by_email("root@x.com")
    assert admin.provider is Provider.LOCAL
    assert admin.roles == frozenset({Role.USER, Role.ADMIN})
    assert verify_password("rootpass", admin.hashed_password)


def test_is_idempotent(user_store):
    assert bootstrap_admin(user_store, "root@x.com", "rootpass") is True
    assert bootstrap_admin(user_store, "root@x.com", "rootpass") is False
    assert user_store.count_users() == 1


def test_does_not_promote_existing_user(user_store):
    user_store.create_user(User(email="taken@x.com"))
    assert bootstrap_admin(user_store, "taken@x.com", "pw") is False
    assert user_store.get_by_email("taken@x.com").roles == frozenset({Role.USER})


def test_disabled_without_credentials(user_store):
    assert bootstrap_admin(user_store, "", "") is False
    assert bootstrap_admin(user_store, "root@x.com", "") is False
    assert user_store.count_users() == 0
