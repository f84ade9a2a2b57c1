"""
Persistence package for the Permissions Service.

Grant store and user directory backends: PostgreSQL via asyncpg for
deployments, and an in-memory backend for local runs and tests.
"""
