"""
Permission resolver for the Permissions Service.

Derives the effective permission set of a role or user and answers point
queries against it. Every answer is served cache-first; misses recompute from
the grant store and validate the stored names against the catalog.

Failures of the grant store or user directory never propagate: they resolve
to an empty permission set (and so to a denial) cached under the short
failure TTL, after which the store is retried.
"""

import re
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from shared.errors import AuthenticationError, InvalidPermissionNameFormat, NotFound, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.base import PermissionCache
from .actors import Actor, RoleRef, UserRef, actor_from_claims, parse_identifier
from .catalog import PermissionCatalog
from .grants import GrantStore, UserDirectory
from .models import PermissionDefinition


DEFAULT_TTL_SECONDS = 900
DEFAULT_FAILURE_TTL_SECONDS = 60

_TOKEN_RE = re.compile(r"^[^\s:.]+$")
_USER_ID_RE = re.compile(r"^[^\s:]+$")


def role_permissions_key(role_id: int) -> str:
    return f"role_permissions:{role_id}"


def role_check_prefix(role_id: int) -> str:
    return f"permission_check:role:{role_id}:"


def role_check_key(role_id: int, resource: str, action: str) -> str:
    return f"{role_check_prefix(role_id)}{resource}:{action}"


def user_check_key(user_id: Any, resource: str, action: str) -> str:
    return f"permission_check:user:{user_id}:{resource}:{action}"


def user_role_key(user_id: Any) -> str:
    return f"user_role:{user_id}"


class PermissionResolver:
    """Cache-backed, fail-closed permission resolution."""

    def __init__(
        self,
        catalog: PermissionCatalog,
        grant_store: GrantStore,
        cache: PermissionCache,
        user_directory: Optional[UserDirectory] = None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        failure_ttl_seconds: int = DEFAULT_FAILURE_TTL_SECONDS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.catalog = catalog
        self.grant_store = grant_store
        self.cache = cache
        self.user_directory = user_directory
        self.ttl_seconds = ttl_seconds
        self.failure_ttl_seconds = failure_ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("permissions.resolver")

    # Input validation

    @staticmethod
    def _check_role_id(role_id: Any) -> int:
        if isinstance(role_id, bool) or not isinstance(role_id, int):
            raise ValidationError("role_id must be an integer", {"role_id": repr(role_id)})
        return role_id

    @staticmethod
    def _check_user_id(user_id: Any) -> Any:
        """Return the canonical user id; "42" and 42 name the same user."""
        try:
            user_id = parse_identifier(user_id)
        except ValueError:
            raise ValidationError("user_id must be an integer or string", {"user_id": repr(user_id)})
        if isinstance(user_id, str) and not _USER_ID_RE.match(user_id):
            raise ValidationError("Malformed user_id", {"user_id": user_id})
        return user_id

    @staticmethod
    def _normalise(resource: Any, action: Any) -> Tuple[str, str]:
        for field, value in (("resource", resource), ("action", action)):
            if not isinstance(value, str) or not _TOKEN_RE.match(value):
                raise ValidationError(f"Malformed {field}", {field: repr(value)})
        return resource.lower(), action.lower()

    # Cache access; never raises

    async def _cache_get(self, key: str) -> Optional[Mapping[str, Any]]:
        try:
            value = await self.cache.get(key)
        except Exception as e:
            self.logger.warning("Cache read failed", key=key, error=str(e))
            value = None

        if not isinstance(value, Mapping):
            value = None
        if self.metrics:
            self.metrics.record_cache_event(self.cache.cache_type, value is not None)
        return value

    async def _cache_set(self, key: str, value: Mapping[str, Any], ttl_seconds: int):
        try:
            await self.cache.set(key, dict(value), ttl_seconds)
        except Exception as e:
            self.logger.warning("Cache write failed", key=key, error=str(e))

    def _record_store_failure(self, operation: str):
        if self.metrics:
            self.metrics.increment_counter("backing_store_failures_total", operation=operation)

    def _record_check(self, allowed: bool, source: str):
        if self.metrics:
            self.metrics.record_permission_check(allowed, source)

    # Role permission sets

    async def role_permissions(self, role_id: int, strict: bool = False) -> FrozenSet[PermissionDefinition]:
        """Effective permission set of a role.

        Grants naming well-formed but unregistered permissions are included as
        synthesised definitions unless ``strict`` is set, in which case only
        catalog entries are returned.
        """
        self._check_role_id(role_id)
        permissions, _ = await self._role_permission_entry(role_id)
        if strict:
            return frozenset(p for p in permissions if self.catalog.is_valid(p.name))
        return permissions

    async def _role_permission_entry(self, role_id: int) -> Tuple[FrozenSet[PermissionDefinition], bool]:
        """Return (permissions, degraded); degraded marks a fail-closed result."""
        key = role_permissions_key(role_id)

        cached = await self._cache_get(key)
        if cached is not None:
            try:
                permissions = frozenset(
                    PermissionDefinition.from_dict(item) for item in cached["permissions"]
                )
                return permissions, bool(cached.get("degraded"))
            except (KeyError, TypeError) as e:
                self.logger.warning("Discarding malformed cache entry", key=key, error=str(e))

        try:
            permissions = await self._resolve_role_permissions(role_id)
        except Exception as e:
            self.logger.error(
                "Failed to load role permissions, denying",
                role_id=role_id,
                retry_in_seconds=self.failure_ttl_seconds,
                error=str(e)
            )
            self._record_store_failure("list_by_role")
            await self._cache_set(key, {"permissions": [], "degraded": True}, self.failure_ttl_seconds)
            return frozenset(), True

        await self._cache_set(
            key,
            {
                "permissions": [p.to_dict() for p in sorted(permissions, key=lambda p: p.name)],
                "degraded": False,
            },
            self.ttl_seconds
        )
        return permissions, False

    async def _resolve_role_permissions(self, role_id: int) -> FrozenSet[PermissionDefinition]:
        grants = await self.grant_store.list_by_role(role_id)

        permissions = set()
        for grant in grants:
            try:
                permissions.add(self.catalog.from_name(grant.permission_name))
            except InvalidPermissionNameFormat:
                self.logger.warning(
                    "Skipping malformed grant",
                    role_id=role_id,
                    permission=grant.permission_name
                )

        return frozenset(permissions)

    # Point checks

    async def role_has_permission(self, role_id: int, resource: str, action: str) -> bool:
        """Whether a role holds (resource, action); matching is case-insensitive."""
        self._check_role_id(role_id)
        resource, action = self._normalise(resource, action)
        allowed, _ = await self._role_check(role_id, resource, action)
        return allowed

    async def _role_check(self, role_id: int, resource: str, action: str) -> Tuple[bool, bool]:
        key = role_check_key(role_id, resource, action)

        cached = await self._cache_get(key)
        if cached is not None:
            allowed = cached.get("allowed") is True
            self._record_check(allowed, "cache")
            return allowed, bool(cached.get("degraded"))

        try:
            permissions, degraded = await self._role_permission_entry(role_id)
            allowed = any(p.matches(resource, action) for p in permissions)
        except Exception as e:
            self.logger.error("Permission check failed, denying", role_id=role_id, error=str(e))
            allowed, degraded = False, True

        ttl = self.failure_ttl_seconds if degraded else self.ttl_seconds
        await self._cache_set(key, {"allowed": allowed, "degraded": degraded}, ttl)
        self._record_check(allowed, "store")
        return allowed, degraded

    async def user_has_permission(self, user_id: Any, resource: str, action: str) -> bool:
        """Whether a user's role holds (resource, action).

        Users without a role, or unknown to the directory, are denied.
        """
        user_id = self._check_user_id(user_id)
        resource, action = self._normalise(resource, action)
        key = user_check_key(user_id, resource, action)

        cached = await self._cache_get(key)
        if cached is not None:
            allowed = cached.get("allowed") is True
            self._record_check(allowed, "cache")
            return allowed

        role_id, degraded = await self._resolve_user_role(user_id)
        if role_id is None:
            allowed = False
            self._record_check(allowed, "store")
        else:
            allowed, role_degraded = await self._role_check(role_id, resource, action)
            degraded = degraded or role_degraded

        ttl = self.failure_ttl_seconds if degraded else self.ttl_seconds
        await self._cache_set(key, {"allowed": allowed, "degraded": degraded}, ttl)
        return allowed

    async def _resolve_user_role(self, user_id: Any) -> Tuple[Optional[int], bool]:
        key = user_role_key(user_id)

        cached = await self._cache_get(key)
        if cached is not None and "role_id" in cached:
            return cached["role_id"], bool(cached.get("degraded"))

        if self.user_directory is None:
            self.logger.warning("No user directory configured, denying", user_id=user_id)
            return None, True

        try:
            record = await self.user_directory.lookup_user(user_id)
            role_id = record.role_id
        except NotFound:
            self.logger.info("User not found", user_id=user_id)
            role_id = None
        except Exception as e:
            self.logger.error(
                "Failed to look up user, denying",
                user_id=user_id,
                retry_in_seconds=self.failure_ttl_seconds,
                error=str(e)
            )
            self._record_store_failure("lookup_user")
            await self._cache_set(key, {"role_id": None, "degraded": True}, self.failure_ttl_seconds)
            return None, True

        if isinstance(role_id, bool) or not isinstance(role_id, int):
            role_id = None

        await self._cache_set(key, {"role_id": role_id, "degraded": False}, self.ttl_seconds)
        return role_id, False

    async def actor_has_permission(self, actor: Actor, resource: str, action: str) -> bool:
        if isinstance(actor, RoleRef):
            return await self.role_has_permission(actor.role_id, resource, action)
        if isinstance(actor, UserRef):
            return await self.user_has_permission(actor.user_id, resource, action)
        raise ValidationError("Unsupported actor", {"actor": repr(actor)})

    async def claims_have_permission(self, claims: Mapping[str, Any], resource: str, action: str) -> bool:
        """Check using a trusted claim set.

        A role id carried in the claims is used directly; otherwise the
        subject is resolved through the user directory.
        """
        try:
            actor = actor_from_claims(claims)
        except AuthenticationError as e:
            self.logger.warning("Unusable claims, denying", error=e.message)
            return False
        return await self.actor_has_permission(actor, resource, action)

    async def user_permissions(self, user_id: Any) -> FrozenSet[PermissionDefinition]:
        """Effective permission set of a user; empty when the user has no role."""
        user_id = self._check_user_id(user_id)
        role_id, _ = await self._resolve_user_role(user_id)
        if role_id is None:
            return frozenset()
        permissions, _ = await self._role_permission_entry(role_id)
        return permissions

    # Invalidation

    async def invalidate_role(self, role_id: int):
        """Drop the cached permission set and point checks keyed by this role.

        User-keyed entries derived from the role are left to expire by TTL.
        """
        try:
            await self.cache.delete(role_permissions_key(role_id))
            removed = await self.cache.delete_prefix(role_check_prefix(role_id))
            self.logger.debug("Role cache invalidated", role_id=role_id, point_checks=removed)
        except Exception as e:
            self.logger.error("Role cache invalidation failed", role_id=role_id, error=str(e))

    async def invalidate_all(self) -> int:
        """Best-effort removal of every cached entry."""
        try:
            removed = await self.cache.clear()
        except Exception as e:
            self.logger.warning("Cache clear failed", error=str(e))
            return 0
        self.logger.info("Permission cache cleared", removed=removed)
        return removed
