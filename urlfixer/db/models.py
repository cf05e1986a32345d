"""SQLAlchemy models for the network's tenant directory."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, func

from .session import Base


class Site(Base):
    """One tenant (site) of the network, keyed by its subdomain-derived domain."""

    __tablename__ = "sites"

    blog_id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, nullable=False, default=1)
    # always stored lower-cased so prefix lookups can use the index
    domain = Column(String(255), nullable=False, index=True)
    path = Column(String(100), nullable=False, default="/")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
