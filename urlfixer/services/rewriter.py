"""
URL rewrite pipeline.

A Rewriter is built once per request for the resolved tenant. Every URL the
runtime generates (site/home URLs, redirects, asset URLs, upload directory
URLs) goes through `rewrite`, which fixes the path, scheme, media location,
port and subdomain suffix for the current environment. Results are memoized
per Rewriter so repeated URLs are computed once and always map to the same
output.
"""
from __future__ import annotations

import logging
import re
import urllib.parse as urlparse
from functools import singledispatchmethod
from typing import Any, Optional

from urlfixer.core.config import Settings, get_settings
from urlfixer.core.utils import strip_scheme
from urlfixer.domain.bypass import BypassRule, is_bypassed, parse_bypass_rules
from urlfixer.domain.domains import STANDARD_PORTS, BaseDomain, extract_subdomain, resolve_base_domain
from urlfixer.domain.media import is_uploads_path
from urlfixer.domain.tenants import Tenant, tenant_uploads_url, upload_path_prefix

logger = logging.getLogger(__name__)

# Extension points whose URLs are passed through the pipeline.
EXTENSION_POINTS = frozenset(
    {
        "home",
        "siteurl",
        "network_site_url",
        "network_admin_url",
        "login_redirect",
        "redirect",
        "script_src",
        "style_src",
        "plugins_url",
        "upload_dir",
    }
)

WP_SEGMENT_RE = re.compile(r"/wp(?=/|$)")
HTTP_SCHEMES = frozenset({"http", "https"})


class Rewriter:
    """Per-request URL rewriter with its own memoization cache."""

    def __init__(
        self,
        settings: Settings | None = None,
        tenant: Tenant | None = None,
        rules: tuple[BypassRule, ...] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache: dict[str, str] = {}
        self.base_domain: BaseDomain = resolve_base_domain(self.settings.home_url) or BaseDomain(
            "localhost", "localhost"
        )
        self.tenant = tenant or Tenant(domain=self.base_domain.with_port, path=self.settings.path_current_site)
        self.scheme = urlparse.urlsplit(self.settings.home_url).scheme or "http"
        self.rules = rules if rules is not None else parse_bypass_rules(self.settings.bypass_urls)

        self.uploads_baseurl = tenant_uploads_url(self.settings.uploads_url, self.tenant, self.settings.multisite)
        self.upload_prefix = upload_path_prefix(self.tenant, self.settings.multisite, trailing_slash=False)
        self.store_url = self.settings.store_url
        if self.base_domain.without_port == "localhost" and self.settings.store_port:
            self.store_url = f"{self.scheme}://localhost:{self.settings.store_port}"
        self.store_hosts = {
            urlparse.urlsplit(u).netloc.lower() for u in (self.store_url, self.settings.store_proxy) if u
        }
        self.store_hosts.discard(urlparse.urlsplit(self.settings.home_url).netloc.lower())

    # ------------------------------------------------------------------ api
    @singledispatchmethod
    def rewrite(self, value: Any) -> Any:
        """Rewrite a URL or, recursively, every URL inside a list/tuple/dict."""
        return value

    @rewrite.register(str)
    def _rewrite_scalar(self, value: str) -> str:
        return self.rewrite_url(value)

    @rewrite.register(list)
    def _rewrite_list(self, value: list) -> list:
        return [self.rewrite(item) for item in value]

    @rewrite.register(tuple)
    def _rewrite_tuple(self, value: tuple) -> tuple:
        return tuple(self.rewrite(item) for item in value)

    @rewrite.register(dict)
    def _rewrite_mapping(self, value: dict) -> dict:
        return {key: self.rewrite(item) for key, item in value.items()}

    def filter(self, extension_point: str, value: Any) -> Any:
        if extension_point not in EXTENSION_POINTS:
            raise ValueError(f"Unknown extension point: {extension_point}")
        return self.rewrite(value)

    def rewrite_url(self, url: str) -> str:
        if url in self.cache:
            return self.cache[url]

        if is_bypassed(url, self.rules):
            self._log("Bypassing URL rewrite for: %s", url)
            return self._remember(url, url)

        try:
            parts = urlparse.urlsplit(url)
            parts.port  # raises ValueError on a malformed port
        except ValueError:
            return self._remember(url, url)
        if not parts.scheme or not parts.hostname:
            return self._remember(url, url)

        if self.store_hosts and parts.netloc.lower() in self.store_hosts:
            return self._remember(url, url)

        fixed = self._fix_wp_path(url, parts)
        if fixed != url:
            return self._remember(url, self.rewrite_url(fixed))

        fixed = self._fix_scheme(url, parts)
        if fixed != url:
            return self._remember(url, self.rewrite_url(fixed))

        media_url = self._rewrite_media_url(url, parts)
        if media_url is not None:
            return self._remember(url, media_url)

        if not self.settings.is_production:
            dev_url = self._rewrite_dev_url(url, parts)
            if dev_url is not None:
                return self._remember(url, dev_url)

        return self._remember(url, url)

    # ------------------------------------------------------------- pipeline
    def _fix_wp_path(self, url: str, parts: urlparse.SplitResult) -> str:
        path, count = WP_SEGMENT_RE.subn("", parts.path, count=1)
        if not count:
            return url
        rewritten = urlparse.urlunsplit(parts._replace(path=path))
        self._log("Fixed path from: %s to %s", url, rewritten)
        return rewritten

    def _fix_scheme(self, url: str, parts: urlparse.SplitResult) -> str:
        scheme = parts.scheme.lower()
        if scheme == self.scheme or scheme not in HTTP_SCHEMES:
            return url
        rewritten = f"{self.scheme}://{strip_scheme(url)}"
        self._log("Fixed scheme from: %s to %s", url, rewritten)
        return rewritten

    def _cdn_endpoint(self) -> str:
        if self.settings.store_proxy:
            return self.settings.store_proxy
        return f"{self.store_url}/{self.settings.store_bucket}"

    def _rewrite_media_url(self, url: str, parts: urlparse.SplitResult) -> Optional[str]:
        if not is_uploads_path(parts.path):
            return None
        if not self.store_url or not self.settings.store_bucket:
            return url

        head = url.split("#", 1)[0].split("?", 1)[0]
        tail = url[len(head):]
        location = strip_scheme(head)
        base = strip_scheme(self.uploads_baseurl)
        if location != base and not location.startswith(base + "/"):
            return url

        rewritten = f"{self._cdn_endpoint()}/{self.upload_prefix}{location[len(base):]}{tail}"
        self._log("Rewrite media URL from %s to %s", url, rewritten)
        return rewritten

    def _matching_base(self, url: str) -> Optional[BaseDomain]:
        """The URL's base domain when it is the production or site base domain."""
        found = resolve_base_domain(url)
        if not found:
            return None
        candidates = {self.settings.production_domain, self.base_domain.with_port, self.base_domain.without_port}
        candidates.discard("")
        return found if found.with_port in candidates else None

    def _rewrite_dev_url(self, url: str, parts: urlparse.SplitResult) -> Optional[str]:
        found = self._matching_base(url)
        if found is None:
            return None

        port = self.settings.proxy_port
        missing_port = (
            parts.port is None
            and bool(port)
            and port not in STANDARD_PORTS
            and self.base_domain.without_port == "localhost"
            and found.without_port == self.base_domain.without_port
            and self.base_domain.with_port not in url
        )
        url_with_port = url
        if missing_port:
            url_with_port = urlparse.urlunsplit(parts._replace(netloc=f"{parts.netloc}:{port}"))
            self._log("Fixed missing port from: %s to %s", url, url_with_port)

        suffix = self.settings.subdomain_suffix
        subdomain = extract_subdomain(parts.hostname)
        if subdomain and suffix and subdomain.endswith(suffix):
            return url_with_port

        rewritten = self._domain_pattern().sub(self._replace_domain, url_with_port, count=1)
        if rewritten != url:
            self._log("Rewrite %s URL from %s to %s", self.settings.app_env, url, rewritten)
        return rewritten

    def _domain_pattern(self) -> re.Pattern:
        domains = [d for d in (self.settings.production_domain, self.base_domain.without_port) if d]
        alternatives = "|".join(re.escape(d) for d in domains)
        return re.compile(
            rf"^(?:https?://)?(?:([a-zA-Z0-9_-]+)\.)?(?:{alternatives})(?=[:/?#]|$)(?::[0-9]+)?(/.*)?",
            re.IGNORECASE,
        )

    def _replace_domain(self, match: re.Match) -> str:
        label = match.group(1)
        rest = match.group(2) or ""
        suffix = self.settings.subdomain_suffix
        if label and not (suffix and label.endswith(suffix)):
            label = f"{label}{suffix}"
        host = f"{label}.{self.base_domain.with_port}" if label else self.base_domain.with_port
        return f"{self.scheme}://{host}{rest}"

    # -------------------------------------------------------------- helpers
    def _remember(self, url: str, result: str) -> str:
        self.cache[url] = result
        return result

    def _log(self, message: str, *args: Any) -> None:
        if self.settings.log_rewrites:
            logger.info(message, *args)
