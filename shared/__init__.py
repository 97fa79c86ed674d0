"""
Shared utilities for the Cross-Language Validation service.

This package aggregates common building blocks consumed by the service:

- base_service: FastAPI service skeleton with health, metrics and error handlers
- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: Rule documents and entity fixtures for tests

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
