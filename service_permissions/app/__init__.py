"""
Permissions Service package for the Access RBAC layer.

This package decides whether an actor (a role, or a user resolved to a
role) may perform an action on a resource. It provides:

- app.main: Admin API surface (catalog, roles, grants, checks) and health.
- app.rbac: Permission catalog, role templates, grant store contract,
  resolver and the authorization gate.
- app.cache: In-process and Redis caches for resolved permissions.
- app.persistence: PostgreSQL and in-memory grant store backends.

Guidelines:
- The catalog ships with the code; only grants are persisted.
- Any failure to resolve a permission is a denial, never a grant.
- Staleness is bounded by the cache TTL; mutations invalidate role entries.
"""
