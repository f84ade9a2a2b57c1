"""
Unit tests for the circuit breaker and the PostgreSQL grant store.
"""

import asyncpg
import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.errors import BackingStoreUnavailable, NotFound, ValidationError
from shared.test_helpers import FakeClock
from service_permissions.app.persistence.postgres import PostgreSQLGrantStore, PostgreSQLUserDirectory
from service_permissions.app.rbac.resolver import PermissionResolver


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=2, recovery_timeout=30, name="test", clock=clock)

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        failing = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_open_circuit_is_backing_store_unavailable(self, breaker):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        with pytest.raises(BackingStoreUnavailable):
            await breaker.call(failing)

    @pytest.mark.asyncio
    async def test_half_open_recovers(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        clock.advance(30)
        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        clock.advance(30)
        with pytest.raises(ConnectionError):
            await breaker.call(failing)
        assert breaker.state == CircuitBreakerState.OPEN

    @pytest.mark.asyncio
    async def test_ignored_exceptions_do_not_count(self, clock):
        breaker = CircuitBreaker(failure_threshold=1, name="test", ignored_exceptions=(ValidationError,), clock=clock)

        with pytest.raises(ValidationError):
            await breaker.call(AsyncMock(side_effect=ValidationError("duplicate")))

        assert breaker.state == CircuitBreakerState.CLOSED


class TestPostgreSQLGrantStore:
    """Test cases for PostgreSQLGrantStore with a mocked pool."""

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, conn):
        store = PostgreSQLGrantStore("postgres://test", failure_threshold=2)
        pool = MagicMock()
        pool.acquire.return_value.__aenter__.return_value = conn
        pool.acquire.return_value.__aexit__.return_value = False
        store.pool = pool
        return store

    @pytest.mark.asyncio
    async def test_not_started(self):
        store = PostgreSQLGrantStore("postgres://test")

        with pytest.raises(BackingStoreUnavailable):
            await store.list_by_role(1)

    @pytest.mark.asyncio
    async def test_list_by_role(self, store, conn):
        conn.fetch.return_value = [
            {"id": 1, "role_id": 7, "permission_name": "games.read", "granted_at": None}
        ]

        grants = await store.list_by_role(7)

        assert grants[0].permission_name == "games.read"
        assert conn.fetch.await_args.args[1] == 7

    @pytest.mark.asyncio
    async def test_driver_errors_become_backing_store_unavailable(self, store, conn):
        conn.fetch.side_effect = asyncpg.InterfaceError("connection is closed")

        with pytest.raises(BackingStoreUnavailable) as exc_info:
            await store.list_by_role(7)
        assert exc_info.value.operation == "list_by_role"

        with pytest.raises(BackingStoreUnavailable):
            await store.list_by_role(7)
        assert store.circuit_breaker.state == CircuitBreakerState.OPEN

    @pytest.mark.asyncio
    async def test_add_notifies_and_reports_written(self, store, conn):
        listener = AsyncMock()
        store.add_invalidation_listener(listener)
        conn.fetch.return_value = [{"id": 10}]

        assert await store.add(7, "games.read") is True
        listener.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_create_role_duplicate(self, store, conn):
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(ValidationError):
            await store.create_role("Admin")
        assert store.circuit_breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_health_check(self, store, conn):
        conn.fetchval.return_value = 1
        assert await store.health_check() is True

        conn.fetchval.side_effect = OSError("unreachable")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_user_directory(self, store, conn):
        directory = PostgreSQLUserDirectory(store)
        conn.fetchrow.return_value = {"id": 42, "role_id": 7}

        assert (await directory.lookup_user(42)).role_id == 7

        conn.fetchrow.return_value = None
        with pytest.raises(NotFound):
            await directory.lookup_user(43)

    @pytest.mark.asyncio
    async def test_uncastable_user_id_is_not_found(self, store, conn):
        """Ids the users.id column cannot hold are unknown users, not outages."""
        directory = PostgreSQLUserDirectory(store)
        conn.fetchrow.side_effect = asyncpg.DataError("invalid input for query argument $1")

        for _ in range(5):
            with pytest.raises(NotFound):
                await directory.lookup_user("alice@example.com")

        assert store.circuit_breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_email_subjects_do_not_lock_out_role_checks(self, store, conn, catalog, cache):
        resolver = PermissionResolver(catalog, store, cache, PostgreSQLUserDirectory(store))
        conn.fetchrow.side_effect = asyncpg.DataError("invalid input for query argument $1")
        conn.fetch.return_value = [
            {"id": 1, "role_id": 7, "permission_name": "games.read", "granted_at": None}
        ]

        for n in range(5):
            assert await resolver.user_has_permission(f"user{n}@example.com", "games", "read") is False

        assert store.circuit_breaker.state == CircuitBreakerState.CLOSED
        assert await resolver.role_has_permission(7, "games", "read") is True
