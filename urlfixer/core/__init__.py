"""
Core utilities shared across the URL fixer.

This package hosts:
- configuration helpers (env vars, uploads paths, object-store credentials)
- logging setup
- small string/size helpers used by the rewrite and offload engines

Services depend on these primitives instead of reading the environment or
configuring handlers themselves.
"""
