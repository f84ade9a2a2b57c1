"""
Shared error handling for the Access RBAC service.
"""

from typing import Dict, Any, Iterable, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessControlException(Exception):
    """Base exception for the Access RBAC service."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(AccessControlException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(AccessControlException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(AccessControlException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class UnknownPermission(AccessControlException):
    """Permission name is not registered in the catalog."""

    def __init__(self, name: str, code: str = "UNKNOWN_PERMISSION", message: Optional[str] = None):
        super().__init__(code, message or f"Unknown permission: {name}", {"permission": name})
        self.name = name


class InvalidPermissionNameFormat(UnknownPermission):
    """Permission name is not shaped as 'resource.action'."""

    def __init__(self, name: str):
        super().__init__(
            name,
            code="INVALID_PERMISSION_NAME_FORMAT",
            message=f"Permission name must be 'resource.action': {name!r}"
        )


class InvalidPermissionSet(AccessControlException):
    """One or more permission names are not in the catalog."""

    def __init__(self, invalid_names: Iterable[str], role_name: Optional[str] = None):
        self.invalid_names = list(invalid_names)
        details: Dict[str, Any] = {"invalid_names": self.invalid_names}
        if role_name is not None:
            details["role_name"] = role_name
        super().__init__(
            "INVALID_PERMISSION_SET",
            f"Invalid permissions: {', '.join(self.invalid_names)}",
            details
        )


class NotFound(AccessControlException):
    """User or role is absent."""

    status_code = 404

    def __init__(self, kind: str, identifier: Any):
        super().__init__(
            "NOT_FOUND",
            f"{kind} not found: {identifier}",
            {"kind": kind, "id": str(identifier)}
        )


class BackingStoreUnavailable(AccessControlException):
    """Transient failure of the persistent store."""

    status_code = 503

    def __init__(self, operation: str, message: str = "Backing store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("BACKING_STORE_UNAVAILABLE", f"{operation}: {message}", details)
        self.operation = operation
