"""
Feature modules live under this package.

Each module owns its models, service functions and blueprints, and reuses the
platform pieces (auth, rbac, audit, storage, rate limiting, DB session).
"""
