"""
Integration tests for the authorization flow: seeded roles, grant
mutations over HTTP, and gate decisions through the resolver cache.
"""

import pytest
import httpx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared.errors import BackingStoreUnavailable
from shared.test_helpers import FakeClock, claims_factory
from service_permissions.app.cache.memory_cache import MemoryCache
from service_permissions.app.main import PermissionsService
from service_permissions.app.persistence.memory import InMemoryGrantStore, InMemoryUserDirectory
from service_permissions.app.rbac.actors import RoleRef, UserRef
from service_permissions.app.rbac.gate import get_claims


class OutageGrantStore(InMemoryGrantStore):
    """Grant store that can be switched offline."""

    def __init__(self):
        super().__init__()
        self.offline = False

    async def list_by_role(self, role_id):
        if self.offline:
            raise BackingStoreUnavailable("list_by_role", "connection refused")
        return await super().list_by_role(role_id)


class TestAuthorizationFlow:
    """Integration tests for the authorization flow."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def grant_store(self):
        return OutageGrantStore()

    @pytest.fixture
    def user_directory(self):
        return InMemoryUserDirectory()

    @pytest.fixture
    def service(self, clock, grant_store, user_directory):
        return PermissionsService(
            get_config("permissions", 8013, env="test"),
            grant_store=grant_store,
            cache=MemoryCache(clock=clock),
            user_directory=user_directory
        )

    @pytest.fixture
    async def roles(self, service):
        """Seed the standard roles and return them by name."""
        await service.templates.seed_roles()
        return {role.name: role for role in await service.grant_store.list_roles()}

    @pytest.fixture
    def claims(self, service):
        """Mutable claim holder read by the get_claims override."""
        holder = {"claims": None}
        service.app.dependency_overrides[get_claims] = lambda: holder["claims"]
        return holder

    @pytest.fixture
    async def client(self, service, roles, claims):
        transport = httpx.ASGITransport(app=service.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://permissions") as client:
            yield client

    @pytest.mark.asyncio
    async def test_seeded_roles_follow_templates(self, service, roles):
        gate = service.gate
        manager = roles["Manager"].id
        staff = roles["Staff"].id

        assert await gate.authorize(RoleRef(manager), "games", "create") is True
        assert await gate.authorize(RoleRef(staff), "games", "create") is False
        assert await gate.authorize(RoleRef(staff), "GameKeys", "READ") is True
        assert await gate.authorize(RoleRef(roles["Super Admin"].id), "system", "admin") is True
        assert await gate.authorize(RoleRef(roles["User"].id), "cart", "delete") is True

    @pytest.mark.asyncio
    async def test_admin_grants_take_effect_for_role_checks(self, service, roles, client, claims, user_directory):
        """A permission granted over HTTP is honoured by the next role-keyed check."""
        manager = roles["Manager"].id
        user_directory.set_user_role(1, roles["Super Admin"].id)
        claims["claims"] = claims_factory.for_user(1)

        assert await service.gate.authorize(RoleRef(manager), "reports", "read") is False

        # Super Admin holds permissions.manage
        response = await client.post(f"/roles/{manager}/permissions/reports.read")
        assert response.status_code == 200

        assert await service.gate.authorize(RoleRef(manager), "reports", "read") is True

    @pytest.mark.asyncio
    async def test_super_admin_lacks_unlisted_actions(self, roles, client, claims, user_directory):
        """Actions match exactly; 'admin' does not imply 'read'."""
        user_directory.set_user_role(1, roles["Super Admin"].id)
        claims["claims"] = claims_factory.for_user(1)

        response = await client.get("/roles")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_user_entries_are_bounded_by_ttl(self, service, roles, user_directory, clock):
        staff = roles["Staff"].id
        user_directory.set_user_role(42, staff)

        assert await service.gate.authorize(UserRef(42), "orders", "update") is False

        await service.grant_store.add(staff, "orders.update")
        assert await service.gate.authorize(RoleRef(staff), "orders", "update") is True
        assert await service.gate.authorize(UserRef(42), "orders", "update") is False

        clock.advance(service.config.permission_cache_ttl_seconds)
        assert await service.gate.authorize(UserRef(42), "orders", "update") is True

    @pytest.mark.asyncio
    async def test_outage_denies_then_recovers(self, service, roles, grant_store, clock):
        staff = roles["Staff"].id
        grant_store.offline = True

        assert await service.gate.authorize(RoleRef(staff), "games", "read") is False
        assert await service.resolver.role_permissions(staff) == frozenset()

        grant_store.offline = False
        assert await service.gate.authorize(RoleRef(staff), "games", "read") is False

        clock.advance(service.config.permission_failure_ttl_seconds)
        assert await service.gate.authorize(RoleRef(staff), "games", "read") is True

    @pytest.mark.asyncio
    async def test_claims_paths_agree(self, service, roles, user_directory):
        manager = roles["Manager"].id
        user_directory.set_user_role(5, manager)

        for resource, action in [("games", "update"), ("orders", "update"), ("users", "delete")]:
            with_role = await service.gate.authorize_claims(
                claims_factory.for_role(manager, user_id=5), resource, action
            )
            without_role = await service.gate.authorize_claims(
                claims_factory.for_user(5), resource, action
            )
            assert with_role == without_role
