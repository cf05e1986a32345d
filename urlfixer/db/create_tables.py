"""
Tenant directory schema bootstrap.

Usage:
  python -m urlfixer.db.create_tables [--drop]
"""
from __future__ import annotations

import argparse

from sqlalchemy.exc import SQLAlchemyError

from urlfixer.core.config import Settings

from . import models  # noqa: F401  # registers the sites table on Base.metadata
from .session import Base, get_engine


def create_all(settings: Settings | None = None) -> list[str]:
    """Create missing tables; returns the table names now present in the schema."""
    engine = get_engine(settings)
    Base.metadata.create_all(bind=engine)
    return sorted(Base.metadata.tables)


def drop_all(settings: Settings | None = None) -> None:
    Base.metadata.drop_all(bind=get_engine(settings))


def main() -> None:
    ap = argparse.ArgumentParser(description="Create the tenant directory tables")
    ap.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = ap.parse_args()
    try:
        if args.drop:
            drop_all()
        tables = create_all()
    except (SQLAlchemyError, RuntimeError) as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
    print(f"Tables ready: {', '.join(tables)}")


if __name__ == "__main__":
    main()
