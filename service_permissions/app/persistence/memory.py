"""
In-memory persistence backend for local runs and tests.
"""

import itertools
import threading
from typing import Any, Dict, List, Optional, Tuple

from shared.errors import NotFound, ValidationError
from ..rbac.grants import GrantStore, UserDirectory
from ..rbac.models import Role, RoleGrant, UserRecord


class InMemoryGrantStore(GrantStore):
    """Grant store held in process memory."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._role_ids = itertools.count(1)
        self._grant_ids = itertools.count(1)
        self._roles: Dict[int, Role] = {}
        self._grants: Dict[Tuple[int, str], RoleGrant] = {}

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        with self._lock:
            if any(role.name == name for role in self._roles.values()):
                raise ValidationError(f"Role already exists: {name}", {"role_name": name})
            role = Role(id=next(self._role_ids), name=name, description=description)
            self._roles[role.id] = role
        self.logger.info("Role created", role_id=role.id, name=name)
        return Role(role.id, role.name, role.description)

    async def get_role(self, role_id: int) -> Optional[Role]:
        role = self._roles.get(role_id)
        return Role(role.id, role.name, role.description) if role else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        for role in list(self._roles.values()):
            if role.name == name:
                return Role(role.id, role.name, role.description)
        return None

    async def list_roles(self) -> List[Role]:
        with self._lock:
            roles = sorted(self._roles.values(), key=lambda r: r.id)
        return [Role(r.id, r.name, r.description) for r in roles]

    async def list_by_role(self, role_id: int) -> List[RoleGrant]:
        with self._lock:
            grants = [g for (rid, _), g in self._grants.items() if rid == role_id]
        return sorted(grants, key=lambda g: g.permission_name)

    async def _insert_grants(self, role_id: int, permission_names: List[str]) -> int:
        written = 0
        with self._lock:
            for name in permission_names:
                key = (role_id, name)
                if key in self._grants:
                    continue
                self._grants[key] = RoleGrant(
                    id=next(self._grant_ids),
                    role_id=role_id,
                    permission_name=name,
                )
                written += 1
        return written

    async def _delete_grant(self, role_id: int, permission_name: str):
        with self._lock:
            self._grants.pop((role_id, permission_name), None)

    async def _replace_grants(self, role_id: int, permission_names: List[str]) -> int:
        with self._lock:
            for key in [key for key in self._grants if key[0] == role_id]:
                del self._grants[key]
        return await self._insert_grants(role_id, permission_names)


class InMemoryUserDirectory(UserDirectory):
    """User directory held in process memory."""

    def __init__(self, users: Optional[Dict[Any, Optional[int]]] = None):
        self._users: Dict[Any, Optional[int]] = dict(users or {})

    def set_user_role(self, user_id: Any, role_id: Optional[int]):
        self._users[user_id] = role_id

    def remove_user(self, user_id: Any):
        self._users.pop(user_id, None)

    async def lookup_user(self, user_id: Any) -> UserRecord:
        if user_id not in self._users:
            raise NotFound("user", user_id)
        return UserRecord(user_id=user_id, role_id=self._users[user_id])
