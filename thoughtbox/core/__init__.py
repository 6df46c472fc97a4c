"""
Core utilities shared across the Thoughtbox package.

This package hosts:
- configuration helpers (env vars, storage backend selection, timezone)
- logging setup
- password hashing

Repositories and services depend on these primitives instead of reading the
environment or configuring logging themselves.
"""
