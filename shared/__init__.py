"""
Shared utilities for the Cédula lookup service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics collector injected into the pipeline
- errors: Canonical error types and result codes
- retry: Retry helpers with exponential backoff
- circuit_breaker: Resilient external call protection
- base_service: FastAPI application scaffold
- test_helpers: registry fixtures and in-memory stores for tests

Any cross-cutting logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
