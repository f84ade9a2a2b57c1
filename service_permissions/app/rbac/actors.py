"""
Actor references resolved at the authorization boundary.

An inbound request is made either by a known role (a role id carried in a
trusted token) or by a user whose role must be looked up. The union is
resolved once, from the claims, before the resolver is called.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from shared.errors import AuthenticationError


ROLE_ID_CLAIM = "role_id"
SUBJECT_CLAIMS = ("sub", "user_id", "nameid")


@dataclass(frozen=True)
class RoleRef:
    """Actor identified by its role.

    user_id is the token subject, kept for logging context only; it never
    takes part in the permission decision.
    """
    role_id: int
    user_id: Optional[Any] = None


@dataclass(frozen=True)
class UserRef:
    """Actor identified by its user id; the role comes from the user directory."""
    user_id: Any


Actor = Union[RoleRef, UserRef]


def parse_identifier(value: Any) -> Any:
    """Normalise an identifier: digit strings become ints, other strings stay opaque."""
    if isinstance(value, bool):
        raise ValueError("boolean is not an identifier")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("empty identifier")
        return int(value) if value.isdigit() else value
    raise ValueError(f"unsupported identifier type: {type(value).__name__}")


def parse_role_id(value: Any) -> Optional[int]:
    """Role ids are integers; anything else is treated as absent."""
    try:
        role_id = parse_identifier(value)
    except ValueError:
        return None
    return role_id if isinstance(role_id, int) else None


def actor_from_claims(claims: Mapping[str, Any]) -> Actor:
    """Resolve the actor from a trusted claim set.

    A valid role id claim wins and avoids the user lookup; otherwise the
    subject claim is used.
    """
    if not isinstance(claims, Mapping):
        raise AuthenticationError("Claims must be a mapping")

    user_id = None
    for claim in SUBJECT_CLAIMS:
        if claims.get(claim) is not None:
            try:
                user_id = parse_identifier(claims[claim])
            except ValueError:
                raise AuthenticationError("Malformed subject claim", {"claim": claim})
            break

    role_id = parse_role_id(claims.get(ROLE_ID_CLAIM))
    if role_id is not None:
        return RoleRef(role_id=role_id, user_id=user_id)

    if user_id is None:
        raise AuthenticationError("Claims carry no subject identifier")

    return UserRef(user_id=user_id)
