"""
Shared utilities for the rule manager.

This package aggregates common building blocks consumed by the rule store
service and the synchronization engine:

- config: Settings via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for idempotent remote reads
- test_helpers: Rule factories and an in-memory store for tests

Only test_helpers may import rules_sync; nothing in shared/ imports
service_rules.
"""
