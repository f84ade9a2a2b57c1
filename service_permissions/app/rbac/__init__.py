"""
RBAC domain package.

Modules of interest:
- catalog: The static permission catalog and name parsing.
- templates: Standard role templates and role bootstrap.
- grants: Grant store contract shared by every persistence backend.
- resolver: Cache-first, fail-closed permission resolution.
- actors: Role/user actor references resolved from claims.
- gate: Authorization predicate and FastAPI dependency.
"""
