"""
Cache package for the Permissions Service.

Provides an in-process TTL cache and a Redis-backed cache behind a common
async interface. Both store JSON-compatible values with a per-entry TTL.
"""
