"""Tenant directory persistence: engine/session helpers and schema bootstrap."""

from .session import Base, get_engine, get_session

__all__ = ["Base", "get_engine", "get_session"]
