"""
Role templates for the Permissions Service.

Templates are named bundles of catalog permissions used to bootstrap the
standard roles. They are never persisted themselves; instantiating one
creates a role and grants it the template's permissions.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from shared.errors import InvalidPermissionSet, NotFound, ValidationError
from shared.logging import get_logger
from .catalog import DEFAULT_CATALOG, Permissions, PermissionCatalog
from .grants import GrantStore
from .models import PermissionValidationResponse, Role, RoleTemplate


SUPER_ADMIN = RoleTemplate("Super Admin", "Full system access", (
    Permissions.SYSTEM_ADMIN,
    Permissions.USERS_ADMIN,
    Permissions.GAMES_ADMIN,
    Permissions.GAME_KEYS_ADMIN,
    Permissions.CATEGORIES_ADMIN,
    Permissions.ROLES_ADMIN,
    Permissions.PERMISSIONS_MANAGE,
    Permissions.ORDERS_ADMIN,
    Permissions.REPORTS_ADMIN,
))

ADMIN = RoleTemplate("Admin", "Administrative access", (
    Permissions.USERS_READ,
    Permissions.USERS_CREATE,
    Permissions.USERS_UPDATE,
    Permissions.GAMES_ADMIN,
    Permissions.GAME_KEYS_ADMIN,
    Permissions.CATEGORIES_ADMIN,
    Permissions.ORDERS_ADMIN,
    Permissions.REPORTS_READ,
))

MANAGER = RoleTemplate("Manager", "Content and inventory management", (
    Permissions.USERS_READ,
    Permissions.GAMES_READ,
    Permissions.GAMES_CREATE,
    Permissions.GAMES_UPDATE,
    Permissions.GAME_KEYS_READ,
    Permissions.GAME_KEYS_CREATE,
    Permissions.GAME_KEYS_UPDATE,
    Permissions.CATEGORIES_READ,
    Permissions.CATEGORIES_CREATE,
    Permissions.CATEGORIES_UPDATE,
    Permissions.ORDERS_READ,
    Permissions.ORDERS_UPDATE,
))

STAFF = RoleTemplate("Staff", "Basic staff operations", (
    Permissions.GAMES_READ,
    Permissions.GAME_KEYS_READ,
    Permissions.CATEGORIES_READ,
    Permissions.ORDERS_READ,
))

USER = RoleTemplate("User", "Basic user access", (
    Permissions.GAMES_READ,
    Permissions.CATEGORIES_READ,
    Permissions.CART_READ,
    Permissions.CART_CREATE,
    Permissions.CART_UPDATE,
    Permissions.CART_DELETE,
    Permissions.ORDERS_CREATE,
    Permissions.ORDERS_READ,
))

DEFAULT_TEMPLATES: Tuple[RoleTemplate, ...] = (SUPER_ADMIN, ADMIN, MANAGER, STAFF, USER)


class RoleTemplateRegistry:
    """Creates roles from templates or validated permission lists."""

    def __init__(
        self,
        catalog: PermissionCatalog = DEFAULT_CATALOG,
        grant_store: Optional[GrantStore] = None,
        templates: Iterable[RoleTemplate] = DEFAULT_TEMPLATES,
    ):
        self.catalog = catalog
        self.grant_store = grant_store
        self.logger = get_logger("permissions.templates")

        self._templates: Dict[str, RoleTemplate] = {}
        for template in templates:
            if template.name in self._templates:
                raise ValueError(f"Duplicate role template: {template.name}")
            self._templates[template.name] = template

    def all_templates(self) -> List[RoleTemplate]:
        return list(self._templates.values())

    def get_template(self, name: str) -> RoleTemplate:
        template = self._templates.get(name)
        if template is None:
            raise NotFound("role template", name)
        return template

    def validate_permissions(self, permission_names: Iterable[str]) -> PermissionValidationResponse:
        """Check names against the catalog without raising."""
        names = list(permission_names)
        invalid = self.catalog.invalid_names(names)
        return PermissionValidationResponse(
            valid=not invalid,
            invalid_names=invalid,
            checked=len(names)
        )

    def validate_catalog(self) -> bool:
        """Sanity check run at startup: catalog non-empty, templates reference it."""
        if len(self.catalog) == 0:
            self.logger.error("Permission catalog is empty")
            return False

        valid = True
        for template in self._templates.values():
            invalid = self.catalog.invalid_names(template.permission_names)
            if invalid:
                self.logger.error(
                    "Role template references unknown permissions",
                    template=template.name,
                    invalid_names=invalid
                )
                valid = False

        self.logger.info("Validated permission catalog", count=len(self.catalog), valid=valid)
        return valid

    def _require_store(self) -> GrantStore:
        if self.grant_store is None:
            raise ValidationError("No grant store configured for role creation")
        return self.grant_store

    async def create_role_from_template(self, template: RoleTemplate) -> Role:
        """Create a role and grant it every permission of the template."""
        store = self._require_store()

        role = await store.create_role(template.name, template.description)
        written = await store.add_many(role.id, template.permission_names)

        self.logger.info(
            "Role created from template",
            role_id=role.id,
            template=template.name,
            permissions=written
        )
        return role

    async def create_custom_role(
        self,
        name: str,
        permission_names: Iterable[str],
        description: Optional[str] = None,
    ) -> Role:
        """Create a role from an explicit permission list.

        Every name is validated before anything is written, so an invalid
        list never leaves a partially created role behind.
        """
        names = list(permission_names)
        invalid = self.catalog.invalid_names(names)
        if invalid:
            self.logger.warning("Rejected custom role", role_name=name, invalid_names=invalid)
            raise InvalidPermissionSet(invalid, role_name=name)

        template = RoleTemplate(
            name=name,
            description=description or f"Custom role: {name}",
            permissions=tuple(self.catalog.require(n) for n in dict.fromkeys(names)),
        )
        return await self.create_role_from_template(template)

    async def update_role_permissions(self, role_id: int, permission_names: Iterable[str]) -> int:
        """Replace a role's grants with a validated permission list."""
        store = self._require_store()

        names = list(permission_names)
        invalid = self.catalog.invalid_names(names)
        if invalid:
            raise InvalidPermissionSet(invalid)

        if await store.get_role(role_id) is None:
            raise NotFound("role", role_id)

        return await store.replace_all(role_id, names)

    async def seed_roles(self) -> Tuple[List[str], List[str]]:
        """Create every template role that does not exist yet.

        Returns the created and skipped template names.
        """
        store = self._require_store()
        created: List[str] = []
        skipped: List[str] = []

        for template in self._templates.values():
            if await store.get_role_by_name(template.name) is not None:
                skipped.append(template.name)
                continue
            await self.create_role_from_template(template)
            created.append(template.name)

        self.logger.info("Seeded roles", created=created, skipped=skipped)
        return created, skipped
