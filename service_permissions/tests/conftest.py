"""
Shared fixtures for Permissions Service tests.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import BackingStoreUnavailable
from shared.test_helpers import FakeClock
from service_permissions.app.cache.memory_cache import MemoryCache
from service_permissions.app.persistence.memory import InMemoryGrantStore, InMemoryUserDirectory
from service_permissions.app.rbac.catalog import DEFAULT_CATALOG
from service_permissions.app.rbac.resolver import PermissionResolver
from service_permissions.app.rbac.templates import RoleTemplateRegistry


class FlakyGrantStore(InMemoryGrantStore):
    """In-memory store whose reads can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.reads = 0

    async def list_by_role(self, role_id):
        self.reads += 1
        if self.fail_reads:
            raise BackingStoreUnavailable("list_by_role", "connection refused")
        return await super().list_by_role(role_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return DEFAULT_CATALOG


@pytest.fixture
def grant_store():
    return FlakyGrantStore()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def user_directory():
    return InMemoryUserDirectory()


@pytest.fixture
def resolver(catalog, grant_store, cache, user_directory):
    """Resolver without automatic invalidation on grant mutations."""
    return PermissionResolver(
        catalog,
        grant_store,
        cache,
        user_directory,
        ttl_seconds=900,
        failure_ttl_seconds=60
    )


@pytest.fixture
def registry(catalog, grant_store):
    return RoleTemplateRegistry(catalog, grant_store)
