"""
Tenant resolution: request host -> network site, cookie domain and context.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from urlfixer.core.config import Settings, get_settings
from urlfixer.domain.domains import BaseDomain, extract_subdomain, resolve_base_domain
from urlfixer.domain.tenants import Tenant
from urlfixer.repositories.sql_repository import SQLRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Everything derived from the host once per request; read-only afterwards."""

    tenant: Tenant
    cookie_domain: str
    admin_cookie_path: str
    subdomain: Optional[str] = None


class TenantService:
    """Resolves the active tenant and cookie domain from a request host."""

    def __init__(self, settings: Settings | None = None, repository: SQLRepository | None = None) -> None:
        self.settings = settings or get_settings()
        self.repository = repository or SQLRepository(self.settings)
        self.base_domain: BaseDomain = resolve_base_domain(self.settings.home_url) or BaseDomain(
            "localhost", "localhost"
        )

    def subdomain_for_host(self, host: str | None) -> Optional[str]:
        """Leading label of host with the environment suffix stripped."""
        hostname = (host or "").strip().lower()
        if not hostname or hostname == self.base_domain.with_port:
            return None
        subdomain = extract_subdomain(hostname)
        suffix = self.settings.subdomain_suffix
        if subdomain and suffix and subdomain.endswith(suffix):
            subdomain = subdomain[: -len(suffix)]
        return subdomain or None

    def default_tenant(self) -> Tenant:
        return Tenant(
            tenant_id=self.settings.blog_id_current_site,
            network_id=self.settings.site_id_current_site,
            domain=self.base_domain.with_port,
            path=self.settings.path_current_site,
        )

    def tenant_domain(self, subdomain: Optional[str]) -> str:
        if subdomain:
            return f"{subdomain}{self.settings.subdomain_suffix}.{self.base_domain.with_port}"
        return self.base_domain.with_port

    def cookie_domain(self, subdomain: Optional[str]) -> str:
        if subdomain:
            return f"{subdomain}{self.settings.subdomain_suffix}.{self.base_domain.without_port}"
        return self.base_domain.without_port

    def lookup(self, subdomain: str) -> Optional[tuple[int, int]]:
        """(tenant_id, network_id) for the first site whose domain starts with subdomain."""
        try:
            site = self.repository.find_site_by_domain_prefix(subdomain, path="/")
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.error("Tenant lookup failed for %r: %s", subdomain, exc)
            return None
        if not site:
            return None
        return int(site.blog_id), int(site.site_id)

    def resolve(self, host: str | None) -> Tenant:
        default = self.default_tenant()
        if self.settings.is_production:
            return default
        subdomain = self.subdomain_for_host(host)
        if not subdomain:
            return default
        found = self.lookup(subdomain)
        tenant_id, network_id = found or (default.tenant_id, default.network_id)
        tenant = Tenant(
            tenant_id=tenant_id,
            network_id=network_id,
            domain=self.tenant_domain(subdomain),
            path=self.settings.path_current_site,
        )
        if self.settings.app_env == "development":
            logger.debug(
                "Detected subdomain %r, tenant domain %s, tenant_id %s, network_id %s",
                subdomain, tenant.domain, tenant.tenant_id, tenant.network_id,
            )
        return tenant

    def build_context(self, host: str | None) -> RequestContext:
        subdomain = None if self.settings.is_production else self.subdomain_for_host(host)
        tenant = self.resolve(host)
        computed = self.cookie_domain(subdomain)
        fixed = self.settings.cookie_domain
        if fixed and fixed != computed:
            logger.warning("COOKIE_DOMAIN mismatch: defined as %s but expected %s", fixed, computed)
        cookie_domain = fixed or computed
        if self.settings.log_rewrites:
            logger.info("COOKIE_DOMAIN: %s", cookie_domain)
        return RequestContext(
            tenant=tenant,
            cookie_domain=cookie_domain,
            admin_cookie_path=self.settings.admin_cookie_path,
            subdomain=subdomain,
        )
