"""
Persistence adapters.

These modules encapsulate how the tenant directory is stored/retrieved.
Services depend on the repository instead of opening sessions themselves.
"""
