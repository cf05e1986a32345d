#!/usr/bin/env python3
"""
Register a tenant (network site) in the tenant directory.

Usage:
  python scripts/add_site.py --subdomain blog [--site-id 1] [--blog-id 3] [--path /]
"""
from __future__ import annotations

import argparse
import re
import sys

from urlfixer.core.config import get_settings
from urlfixer.domain.domains import resolve_base_domain
from urlfixer.repositories.sql_repository import SQLRepository

LABEL_RE = re.compile(r"[a-z0-9-]{1,63}")


def main() -> None:
    ap = argparse.ArgumentParser(description="Register a site in the tenant directory")
    ap.add_argument("--subdomain", required=True, help="Leading label of the site (e.g. blog)")
    ap.add_argument("--site-id", type=int, default=1, help="Network id (default: 1)")
    ap.add_argument("--blog-id", type=int, help="Explicit tenant id (default: next available)")
    ap.add_argument("--path", default="/", help="Site path (default: /)")
    args = ap.parse_args()

    subdomain = (args.subdomain or "").strip().lower()
    if not LABEL_RE.fullmatch(subdomain):
        raise SystemExit("Invalid subdomain (use 1-63 chars [a-z0-9-])")

    settings = get_settings()
    repo = SQLRepository(settings)
    if args.blog_id is not None and repo.get_site(args.blog_id):
        raise SystemExit(f"Tenant id {args.blog_id} already exists")

    base = resolve_base_domain(settings.production_domain or settings.home_url)
    domain = f"{subdomain}.{base.without_port}" if base else subdomain
    existing = repo.find_site_by_domain_prefix(subdomain, path=args.path)
    if existing and existing.domain.split(".", 1)[0] == subdomain:
        raise SystemExit(f"Subdomain '{subdomain}' already registered as tenant {existing.blog_id}")

    site = repo.create_site(domain, site_id=args.site_id, path=args.path, blog_id=args.blog_id)
    print("OK: site registered")
    print(f"  Tenant id: {site.blog_id}")
    print(f"  Network id: {site.site_id}")
    print(f"  Domain: {site.domain}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
