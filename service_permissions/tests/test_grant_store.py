"""
Unit tests for the grant store contract (in-memory backend).
"""

import pytest
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import BackingStoreUnavailable, NotFound, ValidationError
from service_permissions.app.persistence.memory import InMemoryGrantStore, InMemoryUserDirectory


class TestGrantStore:
    """Test cases for GrantStore mutations."""

    @pytest.fixture
    def store(self):
        return InMemoryGrantStore()

    @pytest.fixture
    def listener(self, store):
        listener = AsyncMock()
        store.add_invalidation_listener(listener)
        return listener

    @pytest.mark.asyncio
    async def test_list_by_role_unknown_role_is_empty(self, store):
        assert await store.list_by_role(999) == []

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, store, listener):
        """Adding the same grant twice leaves exactly one grant."""
        assert await store.add(7, "games.read") is True
        assert await store.add(7, "games.read") is False

        grants = await store.list_by_role(7)
        assert [g.permission_name for g in grants] == ["games.read"]
        assert grants[0].role_id == 7
        assert listener.await_count == 2
        listener.assert_awaited_with(7)

    @pytest.mark.asyncio
    async def test_add_many_filters_existing(self, store, listener):
        await store.add(7, "games.read")

        written = await store.add_many(7, ["games.read", "games.create", "games.create", "orders.read"])

        assert written == 2
        names = [g.permission_name for g in await store.list_by_role(7)]
        assert names == ["games.create", "games.read", "orders.read"]
        listener.assert_awaited_with(7)

    @pytest.mark.asyncio
    async def test_add_many_nothing_new_still_invalidates(self, store, listener):
        await store.add(7, "games.read")
        listener.reset_mock()

        assert await store.add_many(7, ["games.read"]) == 0
        listener.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, store, listener):
        await store.add(7, "games.read")

        await store.remove(7, "games.read")
        await store.remove(7, "games.read")

        assert await store.list_by_role(7) == []
        assert listener.await_count == 3

    @pytest.mark.asyncio
    async def test_replace_all_drops_previous_grants(self, store, listener):
        await store.add_many(7, ["games.read", "games.delete"])

        written = await store.replace_all(7, ["orders.read", "orders.read", "cart.read"])

        assert written == 2
        names = [g.permission_name for g in await store.list_by_role(7)]
        assert names == ["cart.read", "orders.read"]
        listener.assert_awaited_with(7)

    @pytest.mark.asyncio
    async def test_replace_all_failure_still_invalidates(self, store, listener):
        store._replace_grants = AsyncMock(side_effect=BackingStoreUnavailable("replace_grants"))

        with pytest.raises(BackingStoreUnavailable):
            await store.replace_all(7, ["orders.read"])

        listener.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_grants_are_per_role(self, store):
        await store.add(1, "games.read")
        await store.add(2, "orders.read")

        assert [g.permission_name for g in await store.list_by_role(1)] == ["games.read"]
        assert [g.permission_name for g in await store.list_by_role(2)] == ["orders.read"]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_fail_mutation(self, store):
        store.add_invalidation_listener(AsyncMock(side_effect=RuntimeError("cache down")))

        assert await store.add(7, "games.read") is True
        assert len(await store.list_by_role(7)) == 1


class TestRoles:
    """Test cases for role persistence."""

    @pytest.fixture
    def store(self):
        return InMemoryGrantStore()

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, store):
        role = await store.create_role("Editor", "Edits things")

        assert role.id == 1
        assert (await store.get_role(role.id)).name == "Editor"
        assert (await store.get_role_by_name("Editor")).id == role.id
        assert await store.get_role(42) is None
        assert await store.get_role_by_name("Nobody") is None

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, store):
        await store.create_role("Editor")

        with pytest.raises(ValidationError):
            await store.create_role("Editor")

    @pytest.mark.asyncio
    async def test_list_roles_in_id_order(self, store):
        await store.create_role("B")
        await store.create_role("A")

        assert [r.name for r in await store.list_roles()] == ["B", "A"]


class TestInMemoryUserDirectory:
    """Test cases for the in-memory user directory."""

    @pytest.mark.asyncio
    async def test_lookup(self):
        directory = InMemoryUserDirectory({42: 7, 43: None})

        assert (await directory.lookup_user(42)).role_id == 7
        assert (await directory.lookup_user(43)).role_id is None

        with pytest.raises(NotFound):
            await directory.lookup_user(44)

    @pytest.mark.asyncio
    async def test_set_and_remove(self):
        directory = InMemoryUserDirectory()
        directory.set_user_role("alice", 3)
        assert (await directory.lookup_user("alice")).role_id == 3

        directory.remove_user("alice")
        with pytest.raises(NotFound):
            await directory.lookup_user("alice")
