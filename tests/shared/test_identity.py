"""Tests for vigil.shared.identity — UserStore."""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from vigil.exceptions import DuplicateUsernameError, PersistenceError, UserNotFoundError, ValidationError


class TestUserStore:
    async def test_create_and_get(self, hub):
        user = await hub.users.create_user("alice")
        assert user.id > 0
        fetched = await hub.users.get_user(user.id)
        assert fetched.username == "alice"
        assert (await hub.users.get_user_by_username("alice")).id == user.id

    async def test_username_taken(self, hub, alice):
        with pytest.raises(DuplicateUsernameError) as exc_info:
            await hub.users.create_user("alice")
        assert exc_info.value.username == "alice"

    async def test_duplicate_does_not_disturb_other_users(self, hub, alice):
        with pytest.raises(DuplicateUsernameError):
            await hub.users.create_user("alice")
        bob = await hub.users.create_user("bob")
        assert (await hub.users.get_user(bob.id)).username == "bob"

    async def test_blank_username_rejected(self, hub):
        with pytest.raises(ValidationError):
            await hub.users.create_user("  ")

    async def test_unknown_user(self, hub):
        with pytest.raises(UserNotFoundError):
            await hub.users.get_user(99)
        with pytest.raises(UserNotFoundError):
            await hub.users.get_user_by_username("nobody")

    async def test_huge_user_id_is_not_found(self, hub):
        with pytest.raises(UserNotFoundError):
            await hub.users.get_user(10**20)

    async def test_read_failure_becomes_persistence_error(self, hub, monkeypatch):
        monkeypatch.setattr(hub.users._conn, "execute", AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error")))
        with pytest.raises(PersistenceError):
            await hub.users.get_user(1)
        with pytest.raises(PersistenceError):
            await hub.users.get_user_by_username("alice")
