"""
Grant store contract for the Permissions Service.

The grant store is the only mutable persistence boundary of the engine: it
owns roles and the role -> permission name association. Backends implement
the primitive reads and writes; the shared mutation logic (idempotence,
duplicate filtering, cache invalidation) lives here so every backend behaves
the same.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, List, Optional

from shared.logging import get_logger
from .models import Role, RoleGrant


InvalidationListener = Callable[[int], Awaitable[None]]


def _dedupe(names: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for name in names:
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


class GrantStore(ABC):
    """Persistence boundary for roles and role grants."""

    def __init__(self):
        self.logger = get_logger(f"permissions.grants.{type(self).__name__}")
        self._listeners: List[InvalidationListener] = []

    def add_invalidation_listener(self, listener: InvalidationListener):
        """Register a coroutine called with the role id after each grant mutation."""
        self._listeners.append(listener)

    async def _notify(self, role_id: int):
        for listener in self._listeners:
            try:
                await listener(role_id)
            except Exception as e:
                # Stale entries still expire by TTL
                self.logger.error("Cache invalidation failed", role_id=role_id, error=str(e))

    async def start(self):
        """Open backend resources."""

    async def stop(self):
        """Release backend resources."""

    async def health_check(self) -> bool:
        return True

    # Roles

    @abstractmethod
    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        ...

    @abstractmethod
    async def get_role(self, role_id: int) -> Optional[Role]:
        ...

    @abstractmethod
    async def get_role_by_name(self, name: str) -> Optional[Role]:
        ...

    @abstractmethod
    async def list_roles(self) -> List[Role]:
        ...

    # Grants

    @abstractmethod
    async def list_by_role(self, role_id: int) -> List[RoleGrant]:
        """Grants of a role ordered by permission name; empty for unknown roles."""

    @abstractmethod
    async def _insert_grants(self, role_id: int, permission_names: List[str]) -> int:
        """Insert grants, silently skipping existing pairs. Returns rows written."""

    @abstractmethod
    async def _delete_grant(self, role_id: int, permission_name: str):
        ...

    @abstractmethod
    async def _replace_grants(self, role_id: int, permission_names: List[str]) -> int:
        """Delete every grant of the role, then insert the given names."""

    async def add(self, role_id: int, permission_name: str) -> bool:
        """Grant a permission. Returns False when the grant already existed."""
        written = await self._insert_grants(role_id, [permission_name])
        self.logger.info("Grant added", role_id=role_id, permission=permission_name, written=written)
        await self._notify(role_id)
        return written > 0

    async def add_many(self, role_id: int, permission_names: Iterable[str]) -> int:
        """Grant several permissions, skipping those already granted."""
        existing = {grant.permission_name for grant in await self.list_by_role(role_id)}
        pending = [name for name in _dedupe(permission_names) if name not in existing]

        written = 0
        if pending:
            written = await self._insert_grants(role_id, pending)
            self.logger.info("Grants added", role_id=role_id, count=written)
        else:
            self.logger.debug("All permissions already granted", role_id=role_id)

        await self._notify(role_id)
        return written

    async def remove(self, role_id: int, permission_name: str):
        """Revoke a permission. Revoking a missing grant is not an error."""
        try:
            await self._delete_grant(role_id, permission_name)
            self.logger.info("Grant removed", role_id=role_id, permission=permission_name)
        finally:
            await self._notify(role_id)

    async def replace_all(self, role_id: int, permission_names: Iterable[str]) -> int:
        """Replace every grant of a role.

        A failure part-way leaves the role with a subset of the requested
        grants and never with the previous grants mixed in; caches are
        invalidated either way.
        """
        names = _dedupe(permission_names)
        try:
            written = await self._replace_grants(role_id, names)
            self.logger.info("Grants replaced", role_id=role_id, count=written)
            return written
        finally:
            await self._notify(role_id)


class UserDirectory(ABC):
    """Read-only view of the external user directory."""

    @abstractmethod
    async def lookup_user(self, user_id):
        """Return a UserRecord or raise NotFound."""
