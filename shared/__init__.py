"""
Shared utilities for the Access RBAC service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Backing-store call protection
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Do not import from service packages into shared/.
"""
