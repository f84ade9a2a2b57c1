"""
Authorization gate for the Permissions Service.

The gate is the only entry point request handling uses for capability
checks. It resolves the actor from trusted claims and asks the resolver;
anything that goes wrong on the way is a denial.
"""

from contextlib import nullcontext
from typing import Any, Callable, Mapping, Optional

from fastapi import Depends, Request

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import get_logger, set_actor_context
from .actors import Actor, RoleRef, actor_from_claims
from .resolver import PermissionResolver


logger = get_logger("permissions.gate")


class AuthorizationGate:
    """Capability predicate over the permission resolver."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def authorize(self, actor: Actor, resource: str, action: str) -> bool:
        """Return whether the actor may perform action on resource.

        Denial is a False result. Malformed resource or action strings raise
        ValidationError.
        """
        metrics = self.resolver.metrics
        with metrics.time_operation("permission_check_duration_seconds") if metrics else nullcontext():
            allowed = await self.resolver.actor_has_permission(actor, resource, action)
        logger.debug("Authorization decided", actor=repr(actor), resource=resource, action=action, allowed=allowed)
        return allowed

    async def authorize_claims(self, claims: Mapping[str, Any], resource: str, action: str) -> bool:
        """Resolve the actor from claims and authorize it.

        Raises AuthenticationError when the claims identify nobody.
        """
        actor = actor_from_claims(claims)
        if isinstance(actor, RoleRef):
            set_actor_context(user_id=actor.user_id, role_id=actor.role_id)
        else:
            set_actor_context(user_id=actor.user_id)
        return await self.authorize(actor, resource, action)

    async def is_allowed(self, actor: Actor, resource: str, action: str) -> bool:
        """Like authorize, but any exception is a denial."""
        try:
            return await self.authorize(actor, resource, action)
        except Exception as e:
            logger.warning("Authorization error, denying", resource=resource, action=action, error=str(e))
            return False


async def get_claims(request: Request) -> Optional[Mapping[str, Any]]:
    """Claims placed on the request by the token layer."""
    return getattr(request.state, "claims", None)


def require_permission(resource: str, action: str) -> Callable:
    """FastAPI dependency enforcing (resource, action) for the caller."""

    async def dependency(request: Request, claims: Optional[Mapping[str, Any]] = Depends(get_claims)):
        if not claims:
            raise AuthenticationError("Missing credentials")

        gate: AuthorizationGate = request.app.state.authorization_gate
        try:
            allowed = await gate.authorize_claims(claims, resource, action)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error("Authorization error, denying", resource=resource, action=action, error=str(e))
            allowed = False

        if not allowed:
            raise AuthorizationError(
                f"Permission denied: {resource}.{action}",
                {"resource": resource, "action": action}
            )
        return claims

    return dependency
