"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Select, delete, select

from urlfixer.core.config import Settings
from urlfixer.db.models import Site
from urlfixer.db.session import get_session


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def domain_prefix_query(prefix: str, path: str = "/") -> Select:
    """
    First site whose domain starts with prefix, on the given path.

    Domains are stored lower-cased, so the prefix is lowered here and the
    column is compared as is; a bare `LIKE 'prefix%'` can use the domain index.
    """
    pattern = _escape_like(prefix.strip().lower()) + "%"
    return (
        select(Site)
        .where(Site.domain.like(pattern, escape="\\"))
        .where(Site.path == path)
        .order_by(Site.blog_id)
        .limit(1)
    )


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings

    # -------------------------- sites --------------------------
    def get_site(self, blog_id: int) -> Optional[Site]:
        with get_session(self.settings) as session:
            return session.get(Site, blog_id)

    def find_site_by_domain_prefix(self, prefix: str, path: str = "/") -> Optional[Site]:
        """Single indexed `domain LIKE '<prefix>%'` lookup, case-insensitive on the prefix."""
        if not (prefix or "").strip():
            return None
        with get_session(self.settings) as session:
            return session.execute(domain_prefix_query(prefix, path)).scalar_one_or_none()

    def list_sites(self) -> list[Site]:
        with get_session(self.settings) as session:
            return session.execute(select(Site).order_by(Site.blog_id)).scalars().all()

    def create_site(self, domain: str, site_id: int = 1, path: str = "/", blog_id: int | None = None) -> Site:
        entity = Site(domain=domain.strip().lower(), site_id=site_id, path=path or "/")
        if blog_id is not None:
            entity.blog_id = blog_id
        with get_session(self.settings) as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def delete_site(self, blog_id: int) -> None:
        with get_session(self.settings) as session:
            session.execute(delete(Site).where(Site.blog_id == blog_id))
            session.commit()
