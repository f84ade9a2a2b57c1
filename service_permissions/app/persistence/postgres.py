"""
PostgreSQL persistence layer for the Permissions Service.
"""

from typing import Any, Awaitable, Callable, List, Optional

import asyncpg

from shared.circuit_breaker import CircuitBreaker
from shared.errors import AccessControlException, BackingStoreUnavailable, NotFound, ValidationError
from ..rbac.grants import GrantStore, UserDirectory
from ..rbac.models import Role, RoleGrant, UserRecord


class PostgreSQLGrantStore(GrantStore):
    """PostgreSQL-backed roles and role grants."""

    def __init__(
        self,
        dsn: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        min_size: int = 2,
        max_size: int = 10,
    ):
        super().__init__()
        self.dsn = dsn
        self.pool: Optional[asyncpg.Pool] = None
        self.min_size = min_size
        self.max_size = max_size
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name="postgres",
            ignored_exceptions=(ValidationError, NotFound)
        )

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL grant store started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL grant store", error=str(e))
            raise BackingStoreUnavailable("start", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL grant store stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS roles (
                    id BIGSERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL UNIQUE,
                    description TEXT
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS role_grants (
                    id BIGSERIAL PRIMARY KEY,
                    role_id BIGINT NOT NULL,
                    permission_name VARCHAR(255) NOT NULL,
                    granted_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    UNIQUE (role_id, permission_name)
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_role_grants_role ON role_grants(role_id);
            """)

    async def run(self, operation: str, func: Callable[[asyncpg.Connection], Awaitable[Any]]) -> Any:
        """Run func on a pooled connection behind the circuit breaker.

        Driver and connection failures surface as BackingStoreUnavailable.
        """
        if self.pool is None:
            raise BackingStoreUnavailable(operation, "grant store not started")

        async def _call():
            async with self.pool.acquire() as conn:
                return await func(conn)

        try:
            return await self.circuit_breaker.call(_call)
        except AccessControlException:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError) as e:
            self.logger.error("Backing store operation failed", operation=operation, error=str(e))
            raise BackingStoreUnavailable(operation, str(e))

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        async def _create(conn):
            try:
                return await conn.fetchrow(
                    "INSERT INTO roles (name, description) VALUES ($1, $2) RETURNING id, name, description",
                    name, description
                )
            except asyncpg.UniqueViolationError:
                raise ValidationError(f"Role already exists: {name}", {"role_name": name})

        row = await self.run("create_role", _create)
        self.logger.info("Role created", role_id=row["id"], name=name)
        return self._row_to_role(row)

    async def get_role(self, role_id: int) -> Optional[Role]:
        row = await self.run(
            "get_role",
            lambda conn: conn.fetchrow("SELECT id, name, description FROM roles WHERE id = $1", role_id)
        )
        return self._row_to_role(row) if row else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        row = await self.run(
            "get_role_by_name",
            lambda conn: conn.fetchrow("SELECT id, name, description FROM roles WHERE name = $1", name)
        )
        return self._row_to_role(row) if row else None

    async def list_roles(self) -> List[Role]:
        rows = await self.run(
            "list_roles",
            lambda conn: conn.fetch("SELECT id, name, description FROM roles ORDER BY id")
        )
        return [self._row_to_role(row) for row in rows]

    async def list_by_role(self, role_id: int) -> List[RoleGrant]:
        rows = await self.run(
            "list_by_role",
            lambda conn: conn.fetch("""
                SELECT id, role_id, permission_name, granted_at
                FROM role_grants
                WHERE role_id = $1
                ORDER BY permission_name
            """, role_id)
        )
        return [self._row_to_grant(row) for row in rows]

    async def _insert_grants(self, role_id: int, permission_names: List[str]) -> int:
        if not permission_names:
            return 0

        async def _insert(conn):
            rows = await conn.fetch("""
                INSERT INTO role_grants (role_id, permission_name)
                SELECT $1, name FROM unnest($2::text[]) AS name
                ON CONFLICT (role_id, permission_name) DO NOTHING
                RETURNING id
            """, role_id, permission_names)
            return len(rows)

        return await self.run("insert_grants", _insert)

    async def _delete_grant(self, role_id: int, permission_name: str):
        await self.run(
            "delete_grant",
            lambda conn: conn.execute(
                "DELETE FROM role_grants WHERE role_id = $1 AND permission_name = $2",
                role_id, permission_name
            )
        )

    async def _replace_grants(self, role_id: int, permission_names: List[str]) -> int:
        async def _replace(conn):
            async with conn.transaction():
                await conn.execute("DELETE FROM role_grants WHERE role_id = $1", role_id)
                if not permission_names:
                    return 0
                rows = await conn.fetch("""
                    INSERT INTO role_grants (role_id, permission_name)
                    SELECT $1, name FROM unnest($2::text[]) AS name
                    ON CONFLICT (role_id, permission_name) DO NOTHING
                    RETURNING id
                """, role_id, permission_names)
                return len(rows)

        return await self.run("replace_grants", _replace)

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            await self.run("health_check", lambda conn: conn.fetchval("SELECT 1"))
            return True
        except Exception:
            return False

    def _row_to_role(self, row) -> Role:
        return Role(id=row["id"], name=row["name"], description=row["description"])

    def _row_to_grant(self, row) -> RoleGrant:
        return RoleGrant(
            id=row["id"],
            role_id=row["role_id"],
            permission_name=row["permission_name"],
            granted_at=row["granted_at"]
        )


class PostgreSQLUserDirectory(UserDirectory):
    """Reads user -> role assignments from the externally owned users table."""

    def __init__(self, store: PostgreSQLGrantStore, table: str = "users"):
        self.store = store
        self.table = table

    async def lookup_user(self, user_id: Any) -> UserRecord:
        async def _fetch(conn):
            try:
                return await conn.fetchrow(f"SELECT id, role_id FROM {self.table} WHERE id = $1", user_id)
            except asyncpg.DataError:
                # Id cannot match the column type
                raise NotFound("user", user_id)

        row = await self.store.run("lookup_user", _fetch)
        if row is None:
            raise NotFound("user", user_id)
        return UserRecord(user_id=row["id"], role_id=row["role_id"])
