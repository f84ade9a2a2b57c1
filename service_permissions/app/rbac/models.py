"""
RBAC data models for the Permissions Service.
"""

from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class PermissionDefinition:
    """A (resource, action) capability, canonically named 'resource.action'."""
    resource: str
    action: str
    name: str
    description: str = ""

    def matches(self, resource: str, action: str) -> bool:
        """Case-insensitive match against a requested (resource, action)."""
        return (
            self.resource.lower() == resource.lower()
            and self.action.lower() == action.lower()
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "resource": self.resource,
            "action": self.action,
            "name": self.name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionDefinition":
        return cls(
            resource=data["resource"],
            action=data["action"],
            name=data["name"],
            description=data.get("description") or "",
        )


@dataclass(frozen=True)
class RoleTemplate:
    """Named bundle of catalog permissions used to bootstrap a role."""
    name: str
    description: str
    permissions: Tuple[PermissionDefinition, ...] = ()

    @property
    def permission_names(self) -> List[str]:
        return [p.name for p in self.permissions]


@dataclass
class Role:
    """Persisted role."""
    id: int
    name: str
    description: Optional[str] = None


@dataclass
class RoleGrant:
    """Persisted association of a permission name to a role."""
    id: int
    role_id: int
    permission_name: str
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class UserRecord:
    """Subset of a user directory entry needed for authorization."""
    user_id: Any
    role_id: Optional[int] = None


class PermissionResponse(BaseModel):
    """Catalog entry."""
    name: str
    resource: str
    action: str
    description: Optional[str] = None
    registered: bool = True

    @classmethod
    def from_definition(cls, definition: PermissionDefinition, registered: bool = True) -> "PermissionResponse":
        return cls(
            name=definition.name,
            resource=definition.resource,
            action=definition.action,
            description=definition.description,
            registered=registered,
        )


class PermissionCatalogResponse(BaseModel):
    """Catalog grouped by resource."""
    total: int
    resources: Dict[str, List[PermissionResponse]]


class RoleResponse(BaseModel):
    """Response model for a role."""
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(id=role.id, name=role.name, description=role.description)


class RoleWithPermissionsResponse(RoleResponse):
    """Role with its effective permissions."""
    permissions: List[PermissionResponse] = Field(default_factory=list)


class RoleTemplateResponse(BaseModel):
    """Response model for a role template."""
    name: str
    description: str
    permissions: List[PermissionResponse]


class CreateRoleFromTemplateRequest(BaseModel):
    """Request model for creating a role from a named template."""
    template_name: str = Field(..., description="Template name, e.g. 'Manager'")


class CreateCustomRoleRequest(BaseModel):
    """Request model for creating a custom role."""
    name: str = Field(..., min_length=1, description="Role name")
    description: Optional[str] = Field(None, description="Role description")
    permissions: List[str] = Field(default_factory=list, description="Permission names")


class UpdateRolePermissionsRequest(BaseModel):
    """Request model for replacing a role's permissions."""
    permissions: List[str] = Field(default_factory=list, description="Permission names")


class ValidatePermissionsRequest(BaseModel):
    """Request model for validating permission names."""
    permissions: List[str] = Field(default_factory=list, description="Permission names")


class PermissionValidationResponse(BaseModel):
    """Outcome of validating permission names against the catalog."""
    valid: bool
    invalid_names: List[str] = Field(default_factory=list)
    checked: int = 0


class GrantMutationResponse(BaseModel):
    """Outcome of a grant mutation."""
    role_id: int
    operation: str
    written: int = 0
    permissions: List[str] = Field(default_factory=list)


class PermissionCheckResponse(BaseModel):
    """Outcome of a point permission check."""
    allowed: bool
    resource: str
    action: str
    user_id: Optional[str] = None
    role_id: Optional[int] = None


class SeedRolesResponse(BaseModel):
    """Outcome of seeding the standard roles."""
    created: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
