"""
Permissions service for the Access RBAC layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import Depends, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import NotFound, ValidationError

from .cache.base import PermissionCache
from .cache.memory_cache import MemoryCache
from .cache.redis_cache import RedisCache
from .persistence.memory import InMemoryGrantStore, InMemoryUserDirectory
from .persistence.postgres import PostgreSQLGrantStore, PostgreSQLUserDirectory
from .rbac.actors import parse_identifier
from .rbac.catalog import DEFAULT_CATALOG, PermissionCatalog
from .rbac.gate import AuthorizationGate, require_permission
from .rbac.grants import GrantStore, UserDirectory
from .rbac.models import (
    PermissionDefinition,
    PermissionResponse, PermissionCatalogResponse,
    RoleResponse, RoleWithPermissionsResponse, RoleTemplateResponse,
    CreateRoleFromTemplateRequest, CreateCustomRoleRequest,
    UpdateRolePermissionsRequest, ValidatePermissionsRequest,
    PermissionValidationResponse, GrantMutationResponse,
    PermissionCheckResponse, SeedRolesResponse
)
from .rbac.resolver import PermissionResolver
from .rbac.templates import RoleTemplateRegistry


class PermissionsService(BaseService):
    """Permissions service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        catalog: Optional[PermissionCatalog] = None,
        grant_store: Optional[GrantStore] = None,
        cache: Optional[PermissionCache] = None,
        user_directory: Optional[UserDirectory] = None,
    ):
        super().__init__("permissions", 8013, config)

        # Initialize components
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG
        self.grant_store = grant_store or self._create_grant_store()
        self.cache = cache or self._create_cache()
        self.user_directory = user_directory or self._create_user_directory()

        self.resolver = PermissionResolver(
            self.catalog,
            self.grant_store,
            self.cache,
            self.user_directory,
            ttl_seconds=self.config.permission_cache_ttl_seconds,
            failure_ttl_seconds=self.config.permission_failure_ttl_seconds,
            metrics=self.metrics
        )
        self.templates = RoleTemplateRegistry(self.catalog, self.grant_store)
        self.gate = AuthorizationGate(self.resolver)

        self.grant_store.add_invalidation_listener(self.resolver.invalidate_role)
        self.app.state.authorization_gate = self.gate

        self._setup_permissions_routes()

    def _create_grant_store(self) -> GrantStore:
        if self.config.grant_store_backend == "postgres":
            return PostgreSQLGrantStore(
                self.config.postgres_dsn,
                failure_threshold=self.config.store_failure_threshold,
                recovery_timeout=self.config.store_recovery_timeout_seconds
            )
        return InMemoryGrantStore()

    def _create_cache(self) -> PermissionCache:
        if self.config.cache_backend == "redis":
            return RedisCache(self.config.redis_url)
        return MemoryCache()

    def _create_user_directory(self) -> UserDirectory:
        if isinstance(self.grant_store, PostgreSQLGrantStore):
            return PostgreSQLUserDirectory(self.grant_store)
        return InMemoryUserDirectory()

    def _permission_response(self, definition: PermissionDefinition) -> PermissionResponse:
        return PermissionResponse.from_definition(definition, self.catalog.is_valid(definition.name))

    def _sorted_responses(self, permissions) -> List[PermissionResponse]:
        return [self._permission_response(p) for p in sorted(permissions, key=lambda p: p.name)]

    async def _require_role(self, role_id: int):
        role = await self.grant_store.get_role(role_id)
        if role is None:
            raise NotFound("role", role_id)
        return role

    @staticmethod
    def _parse_user_id(user_id: str) -> Any:
        try:
            return parse_identifier(user_id)
        except ValueError:
            raise ValidationError("Malformed user_id", {"user_id": user_id})

    def _setup_permissions_routes(self):
        """Set up permissions-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "permissions",
                "message": "Access RBAC - Permissions Service",
                "version": "1.0.0",
                "capabilities": ["permission_catalog", "role_templates", "permission_resolution", "caching"]
            }

        # Catalog

        @self.app.get(
            "/permissions",
            response_model=PermissionCatalogResponse,
            dependencies=[Depends(require_permission("permissions", "read"))]
        )
        async def get_permissions():
            """Get the permission catalog grouped by resource."""
            resources = {
                resource: [self._permission_response(p) for p in definitions]
                for resource, definitions in self.catalog.by_resource().items()
            }
            return PermissionCatalogResponse(total=len(self.catalog), resources=resources)

        @self.app.post(
            "/permissions/validate",
            response_model=PermissionValidationResponse,
            dependencies=[Depends(require_permission("permissions", "read"))]
        )
        async def validate_permissions(request: ValidatePermissionsRequest):
            """Validate permission names against the catalog."""
            return self.templates.validate_permissions(request.permissions)

        @self.app.post(
            "/permissions/cache/clear",
            dependencies=[Depends(require_permission("system", "admin"))]
        )
        async def clear_permission_cache():
            """Drop every cached permission entry."""
            removed = await self.resolver.invalidate_all()
            return {"cleared": removed}

        # Roles

        @self.app.get(
            "/roles",
            response_model=List[RoleResponse],
            dependencies=[Depends(require_permission("roles", "read"))]
        )
        async def get_roles():
            """List roles."""
            return [RoleResponse.from_role(role) for role in await self.grant_store.list_roles()]

        @self.app.get(
            "/roles/templates",
            response_model=List[RoleTemplateResponse],
            dependencies=[Depends(require_permission("roles", "read"))]
        )
        async def get_role_templates():
            """List role templates."""
            return [
                RoleTemplateResponse(
                    name=template.name,
                    description=template.description,
                    permissions=[self._permission_response(p) for p in template.permissions]
                )
                for template in self.templates.all_templates()
            ]

        @self.app.post(
            "/roles/from-template",
            response_model=RoleResponse,
            status_code=201,
            dependencies=[Depends(require_permission("roles", "create"))]
        )
        async def create_role_from_template(request: CreateRoleFromTemplateRequest):
            """Create a role from a named template."""
            template = self.templates.get_template(request.template_name)
            role = await self.templates.create_role_from_template(template)
            self.metrics.increment_counter("grant_mutations_total", operation="create_role")
            return RoleResponse.from_role(role)

        @self.app.post(
            "/roles/custom",
            response_model=RoleResponse,
            status_code=201,
            dependencies=[Depends(require_permission("roles", "create"))]
        )
        async def create_custom_role(request: CreateCustomRoleRequest):
            """Create a role from an explicit permission list."""
            role = await self.templates.create_custom_role(
                request.name,
                request.permissions,
                description=request.description
            )
            self.metrics.increment_counter("grant_mutations_total", operation="create_role")
            return RoleResponse.from_role(role)

        @self.app.get(
            "/roles/{role_id}/permissions",
            response_model=RoleWithPermissionsResponse,
            dependencies=[Depends(require_permission("roles", "read"))]
        )
        async def get_role_permissions(
            role_id: int,
            strict: bool = Query(False, description="Only return catalog permissions")
        ):
            """Get the effective permissions of a role."""
            role = await self._require_role(role_id)
            permissions = await self.resolver.role_permissions(role_id, strict=strict)
            return RoleWithPermissionsResponse(
                id=role.id,
                name=role.name,
                description=role.description,
                permissions=self._sorted_responses(permissions)
            )

        @self.app.post(
            "/roles/{role_id}/permissions/{permission_name}",
            response_model=GrantMutationResponse,
            dependencies=[Depends(require_permission("permissions", "manage"))]
        )
        async def assign_permission(role_id: int, permission_name: str):
            """Grant a permission to a role."""
            self.catalog.require(permission_name)
            await self._require_role(role_id)

            written = await self.grant_store.add(role_id, permission_name)
            self.metrics.increment_counter("grant_mutations_total", operation="add")
            return GrantMutationResponse(
                role_id=role_id,
                operation="add",
                written=int(written),
                permissions=[permission_name]
            )

        @self.app.delete(
            "/roles/{role_id}/permissions/{permission_name}",
            response_model=GrantMutationResponse,
            dependencies=[Depends(require_permission("permissions", "manage"))]
        )
        async def revoke_permission(role_id: int, permission_name: str):
            """Revoke a permission from a role."""
            await self._require_role(role_id)

            await self.grant_store.remove(role_id, permission_name)
            self.metrics.increment_counter("grant_mutations_total", operation="remove")
            return GrantMutationResponse(
                role_id=role_id,
                operation="remove",
                permissions=[permission_name]
            )

        @self.app.put(
            "/roles/{role_id}/permissions",
            response_model=GrantMutationResponse,
            dependencies=[Depends(require_permission("permissions", "manage"))]
        )
        async def replace_role_permissions(role_id: int, request: UpdateRolePermissionsRequest):
            """Replace every permission of a role."""
            written = await self.templates.update_role_permissions(role_id, request.permissions)
            self.metrics.increment_counter("grant_mutations_total", operation="replace")
            return GrantMutationResponse(
                role_id=role_id,
                operation="replace",
                written=written,
                permissions=list(dict.fromkeys(request.permissions))
            )

        # Users

        @self.app.get(
            "/users/{user_id}/permissions",
            response_model=List[PermissionResponse],
            dependencies=[Depends(require_permission("users", "read"))]
        )
        async def get_user_permissions(user_id: str):
            """Get the effective permissions of a user."""
            permissions = await self.resolver.user_permissions(self._parse_user_id(user_id))
            return self._sorted_responses(permissions)

        @self.app.get(
            "/users/{user_id}/check",
            response_model=PermissionCheckResponse,
            dependencies=[Depends(require_permission("users", "read"))]
        )
        async def check_user_permission(
            user_id: str,
            resource: str = Query(..., description="Resource, e.g. 'games'"),
            action: str = Query(..., description="Action, e.g. 'read'")
        ):
            """Check a single permission for a user."""
            allowed = await self.resolver.user_has_permission(self._parse_user_id(user_id), resource, action)
            return PermissionCheckResponse(
                allowed=allowed,
                resource=resource,
                action=action,
                user_id=user_id
            )

        # Administration

        @self.app.post(
            "/admin/seed-roles",
            response_model=SeedRolesResponse,
            dependencies=[Depends(require_permission("system", "admin"))]
        )
        async def seed_roles():
            """Create the standard template roles that do not exist yet."""
            created, skipped = await self.templates.seed_roles()
            return SeedRolesResponse(created=created, skipped=skipped)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies."""
        dependencies = {}

        try:
            dependencies["grant_store"] = "ok" if await self.grant_store.health_check() else "error"
        except Exception:
            dependencies["grant_store"] = "error"

        try:
            dependencies["cache"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["cache"] = "error"

        return dependencies

    async def start(self):
        """Start service components."""
        if not self.templates.validate_catalog():
            raise ValueError("Permission catalog failed validation")

        await self.grant_store.start()
        await self.cache.start()

        if self.config.seed_roles_on_startup:
            await self.templates.seed_roles()

        self.logger.info(
            "Permissions service started",
            permissions=len(self.catalog),
            grant_store=type(self.grant_store).__name__,
            cache=self.cache.cache_type
        )

    async def stop(self):
        """Stop service components."""
        await self.cache.stop()
        await self.grant_store.stop()
        self.logger.info("Permissions service stopped")


def create_app():
    """Create the FastAPI application."""
    return PermissionsService().app


if __name__ == "__main__":
    service = PermissionsService()
    service.run()
