"""
High-level use cases of the URL fixer.

Each service module orchestrates repositories/adapters to implement one
engine: tenant resolution, URL rewriting and media offload.

Routers and middleware call these services instead of touching the
database or the object store directly.
"""
