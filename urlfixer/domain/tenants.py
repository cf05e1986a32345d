"""Tenant (network site) identity and its storage layout."""
from __future__ import annotations

from dataclasses import dataclass

MAIN_TENANT_ID = 1


@dataclass(frozen=True)
class Tenant:
    tenant_id: int = MAIN_TENANT_ID
    network_id: int = 1
    domain: str = ""
    path: str = "/"

    @property
    def is_main(self) -> bool:
        return self.tenant_id == MAIN_TENANT_ID


def upload_subdir(tenant: Tenant, multisite: bool) -> str:
    """Uploads sub-directory owned by the tenant ("" or "sites/<id>")."""
    if multisite and not tenant.is_main:
        return f"sites/{tenant.tenant_id}"
    return ""


def upload_path_prefix(tenant: Tenant, multisite: bool, trailing_slash: bool = True) -> str:
    """Object key prefix for the tenant: "uploads/" or "uploads/sites/<id>/"."""
    subdir = upload_subdir(tenant, multisite)
    base = f"uploads/{subdir}" if subdir else "uploads"
    return base + "/" if trailing_slash else base


def tenant_uploads_url(uploads_url: str, tenant: Tenant, multisite: bool) -> str:
    """Public base URL of the tenant's local uploads directory."""
    subdir = upload_subdir(tenant, multisite)
    base = uploads_url.rstrip("/")
    return f"{base}/{subdir}" if subdir else base
