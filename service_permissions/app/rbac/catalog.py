"""
Permission catalog for the Permissions Service.

The catalog is the single source of truth for valid permissions. It ships
with the service and is never mutated after import, so it is safe to read
from any number of concurrent requests without locking. Grants persisted in
the store refer to permissions only by their canonical ``resource.action``
name.
"""

import re
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from shared.errors import InvalidPermissionNameFormat, UnknownPermission
from .models import PermissionDefinition


_TOKEN_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class Resources:
    """Resource names."""
    USERS = "users"
    GAMES = "games"
    GAME_KEYS = "gamekeys"
    CATEGORIES = "categories"
    ROLES = "roles"
    PERMISSIONS = "permissions"
    ORDERS = "orders"
    CART = "cart"
    REPORTS = "reports"
    SYSTEM = "system"
    S3 = "s3"


class Actions:
    """Action names."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ADMIN = "admin"
    MANAGE = "manage"
    EXECUTE = "execute"
    PRESIGN = "presign"


def _define(resource: str, action: str, description: str) -> PermissionDefinition:
    return PermissionDefinition(resource, action, f"{resource}.{action}", description)


class Permissions:
    """Registered permission definitions."""

    # User management
    USERS_READ = _define(Resources.USERS, Actions.READ, "View users list and profiles")
    USERS_CREATE = _define(Resources.USERS, Actions.CREATE, "Create new users")
    USERS_UPDATE = _define(Resources.USERS, Actions.UPDATE, "Update user profiles")
    USERS_DELETE = _define(Resources.USERS, Actions.DELETE, "Delete users")
    USERS_ADMIN = _define(Resources.USERS, Actions.ADMIN, "Full user management access")

    # Games
    GAMES_READ = _define(Resources.GAMES, Actions.READ, "View games catalog")
    GAMES_CREATE = _define(Resources.GAMES, Actions.CREATE, "Add new games")
    GAMES_UPDATE = _define(Resources.GAMES, Actions.UPDATE, "Edit game details")
    GAMES_DELETE = _define(Resources.GAMES, Actions.DELETE, "Remove games from catalog")
    GAMES_ADMIN = _define(Resources.GAMES, Actions.ADMIN, "Full games management access")

    # Game keys
    GAME_KEYS_READ = _define(Resources.GAME_KEYS, Actions.READ, "View game keys")
    GAME_KEYS_CREATE = _define(Resources.GAME_KEYS, Actions.CREATE, "Add new game keys")
    GAME_KEYS_UPDATE = _define(Resources.GAME_KEYS, Actions.UPDATE, "Update game key status")
    GAME_KEYS_DELETE = _define(Resources.GAME_KEYS, Actions.DELETE, "Remove game keys")
    GAME_KEYS_ADMIN = _define(Resources.GAME_KEYS, Actions.ADMIN, "Full game keys management")

    # Categories
    CATEGORIES_READ = _define(Resources.CATEGORIES, Actions.READ, "View game categories")
    CATEGORIES_CREATE = _define(Resources.CATEGORIES, Actions.CREATE, "Create new categories")
    CATEGORIES_UPDATE = _define(Resources.CATEGORIES, Actions.UPDATE, "Edit categories")
    CATEGORIES_DELETE = _define(Resources.CATEGORIES, Actions.DELETE, "Delete categories")
    CATEGORIES_ADMIN = _define(Resources.CATEGORIES, Actions.ADMIN, "Full categories management")

    # Roles
    ROLES_READ = _define(Resources.ROLES, Actions.READ, "View roles and permissions")
    ROLES_CREATE = _define(Resources.ROLES, Actions.CREATE, "Create new roles")
    ROLES_UPDATE = _define(Resources.ROLES, Actions.UPDATE, "Edit role details")
    ROLES_DELETE = _define(Resources.ROLES, Actions.DELETE, "Delete roles")
    ROLES_ADMIN = _define(Resources.ROLES, Actions.ADMIN, "Full roles management")

    # Permission management
    PERMISSIONS_READ = _define(Resources.PERMISSIONS, Actions.READ, "View available permissions")
    PERMISSIONS_MANAGE = _define(Resources.PERMISSIONS, Actions.MANAGE, "Assign/revoke permissions")

    # Orders
    ORDERS_READ = _define(Resources.ORDERS, Actions.READ, "View orders")
    ORDERS_CREATE = _define(Resources.ORDERS, Actions.CREATE, "Create orders")
    ORDERS_UPDATE = _define(Resources.ORDERS, Actions.UPDATE, "Update order status")
    ORDERS_DELETE = _define(Resources.ORDERS, Actions.DELETE, "Cancel/delete orders")
    ORDERS_ADMIN = _define(Resources.ORDERS, Actions.ADMIN, "Full orders management")

    # Cart
    CART_READ = _define(Resources.CART, Actions.READ, "View cart items")
    CART_CREATE = _define(Resources.CART, Actions.CREATE, "Add items to cart")
    CART_UPDATE = _define(Resources.CART, Actions.UPDATE, "Update cart items")
    CART_DELETE = _define(Resources.CART, Actions.DELETE, "Remove items from cart")

    # Reports
    REPORTS_READ = _define(Resources.REPORTS, Actions.READ, "View basic reports")
    REPORTS_ADMIN = _define(Resources.REPORTS, Actions.ADMIN, "Access all reports and analytics")

    # System administration
    SYSTEM_ADMIN = _define(Resources.SYSTEM, Actions.ADMIN, "Full system administration access")
    SYSTEM_EXECUTE = _define(Resources.SYSTEM, Actions.EXECUTE, "Execute system operations")

    # Object storage
    S3_PRESIGN = _define(Resources.S3, Actions.PRESIGN, "Generate presigned upload URLs")
    S3_DELETE = _define(Resources.S3, Actions.DELETE, "Delete files from S3")


ALL_PERMISSIONS: Tuple[PermissionDefinition, ...] = (
    Permissions.USERS_READ,
    Permissions.USERS_CREATE,
    Permissions.USERS_UPDATE,
    Permissions.USERS_DELETE,
    Permissions.USERS_ADMIN,
    Permissions.GAMES_READ,
    Permissions.GAMES_CREATE,
    Permissions.GAMES_UPDATE,
    Permissions.GAMES_DELETE,
    Permissions.GAMES_ADMIN,
    Permissions.GAME_KEYS_READ,
    Permissions.GAME_KEYS_CREATE,
    Permissions.GAME_KEYS_UPDATE,
    Permissions.GAME_KEYS_DELETE,
    Permissions.GAME_KEYS_ADMIN,
    Permissions.CATEGORIES_READ,
    Permissions.CATEGORIES_CREATE,
    Permissions.CATEGORIES_UPDATE,
    Permissions.CATEGORIES_DELETE,
    Permissions.CATEGORIES_ADMIN,
    Permissions.ROLES_READ,
    Permissions.ROLES_CREATE,
    Permissions.ROLES_UPDATE,
    Permissions.ROLES_DELETE,
    Permissions.ROLES_ADMIN,
    Permissions.PERMISSIONS_READ,
    Permissions.PERMISSIONS_MANAGE,
    Permissions.ORDERS_READ,
    Permissions.ORDERS_CREATE,
    Permissions.ORDERS_UPDATE,
    Permissions.ORDERS_DELETE,
    Permissions.ORDERS_ADMIN,
    Permissions.CART_READ,
    Permissions.CART_CREATE,
    Permissions.CART_UPDATE,
    Permissions.CART_DELETE,
    Permissions.REPORTS_READ,
    Permissions.REPORTS_ADMIN,
    Permissions.SYSTEM_ADMIN,
    Permissions.SYSTEM_EXECUTE,
    Permissions.S3_PRESIGN,
    Permissions.S3_DELETE,
)


def parse_permission_name(name: str) -> Tuple[str, str]:
    """Split 'resource.action' into its two non-empty segments."""
    if not isinstance(name, str):
        raise InvalidPermissionNameFormat(repr(name))

    parts = name.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidPermissionNameFormat(name)

    return parts[0], parts[1]


class PermissionCatalog:
    """Immutable registry of permission definitions."""

    def __init__(self, definitions: Iterable[PermissionDefinition]):
        ordered: List[PermissionDefinition] = []
        by_name: Dict[str, PermissionDefinition] = {}

        for definition in definitions:
            self._check_definition(definition)
            if definition.name in by_name:
                raise ValueError(f"Duplicate permission definition: {definition.name}")
            by_name[definition.name] = definition
            ordered.append(definition)

        self._permissions: Tuple[PermissionDefinition, ...] = tuple(ordered)
        self._by_name: Mapping[str, PermissionDefinition] = MappingProxyType(by_name)

        grouped: Dict[str, List[PermissionDefinition]] = {}
        for definition in self._permissions:
            grouped.setdefault(definition.resource, []).append(definition)
        self._by_resource: Mapping[str, Tuple[PermissionDefinition, ...]] = MappingProxyType(
            {resource: tuple(items) for resource, items in grouped.items()}
        )

    @staticmethod
    def _check_definition(definition: PermissionDefinition):
        if not _TOKEN_RE.match(definition.resource) or not _TOKEN_RE.match(definition.action):
            raise ValueError(f"Permission tokens must be lowercase: {definition.name}")
        if definition.name != f"{definition.resource}.{definition.action}":
            raise ValueError(f"Permission name does not match its tokens: {definition.name}")

    def __len__(self) -> int:
        return len(self._permissions)

    def __iter__(self) -> Iterator[PermissionDefinition]:
        return iter(self._permissions)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._by_name

    def all_permissions(self) -> Tuple[PermissionDefinition, ...]:
        """All definitions in registration order."""
        return self._permissions

    def by_resource(self) -> Mapping[str, Tuple[PermissionDefinition, ...]]:
        """Definitions grouped by resource, in registration order."""
        return self._by_resource

    def is_valid(self, name: str) -> bool:
        """Exact, case-sensitive membership test."""
        return name in self

    def get(self, name: str) -> Optional[PermissionDefinition]:
        return self._by_name.get(name) if isinstance(name, str) else None

    def require(self, name: str) -> PermissionDefinition:
        """Strict lookup: registered definitions only."""
        definition = self.get(name)
        if definition is None:
            parse_permission_name(name)
            raise UnknownPermission(name)
        return definition

    def from_name(self, name: str) -> PermissionDefinition:
        """Look up a definition, synthesising one for well-formed unregistered names.

        Grants may reference permissions that were renamed or removed from the
        catalog. Those still resolve to a displayable definition rather than
        failing the caller; only names that are not 'resource.action' shaped
        raise InvalidPermissionNameFormat.
        """
        definition = self.get(name)
        if definition is not None:
            return definition

        resource, action = parse_permission_name(name)
        return PermissionDefinition(
            resource=resource,
            action=action,
            name=name,
            description=f"Permission for {action} action on {resource} resource",
        )

    def invalid_names(self, names: Iterable[str]) -> List[str]:
        """Names not registered in the catalog, in input order, deduplicated."""
        seen = set()
        invalid = []
        for name in names:
            if name in seen:
                continue
            seen.add(name)
            if not self.is_valid(name):
                invalid.append(name)
        return invalid


DEFAULT_CATALOG = PermissionCatalog(ALL_PERMISSIONS)
