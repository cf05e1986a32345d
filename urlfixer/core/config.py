"""
Configuration helpers for the URL fixer.

Everything the rewrite and offload engines need is read from environment
variables exactly once per process and exposed as an immutable Settings
object, so services never fetch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os

NON_PRODUCTION_ENVS = frozenset({"development", "staging"})


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    home_url: str
    production_domain: str
    subdomain_suffix: str
    proxy_port: int | None
    store_url: str
    store_bucket: str
    store_key: str
    store_secret: str
    store_proxy: str
    store_port: int | None
    store_region: str
    store_checksums: bool
    bypass_urls: tuple[str, ...]
    log_rewrites: bool
    log_level: str
    multisite: bool
    path_current_site: str
    site_id_current_site: int
    blog_id_current_site: int
    database_url: str
    uploads_dir: str
    uploads_url: str
    cookie_domain: str
    admin_cookie_path: str
    upload_wait_retries: int
    upload_wait_interval: float

    @property
    def is_production(self) -> bool:
        return self.app_env not in NON_PRODUCTION_ENVS

    @property
    def store_configured(self) -> bool:
        return bool(self.store_url and self.store_key and self.store_secret)


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str | None, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _optional_int(value: str | None) -> int | None:
        try:
            return int(value) if value not in (None, "") else None
        except (TypeError, ValueError):
            return None

    def _float(value: str | None, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    def _list(value: str | None) -> tuple[str, ...]:
        return tuple(item.strip() for item in (value or "").split(",") if item.strip())

    proxy_port = _optional_int(os.getenv("PROXY_PORT"))
    home_url = (os.getenv("HOME_URL") or "http://localhost").rstrip("/")
    if proxy_port:
        home_url = f"{home_url}:{proxy_port}"

    return Settings(
        app_env=(os.getenv("APP_ENV") or "production").strip().lower(),
        home_url=home_url,
        production_domain=(os.getenv("PRODUCTION_DOMAIN") or "").strip().lower(),
        subdomain_suffix=(os.getenv("SUBDOMAIN_SUFFIX") or "").strip(),
        proxy_port=proxy_port,
        store_url=(os.getenv("STORE_URL") or "").rstrip("/"),
        store_bucket=(os.getenv("STORE_BUCKET") or "").strip(),
        store_key=os.getenv("STORE_KEY", ""),
        store_secret=os.getenv("STORE_SECRET", ""),
        store_proxy=(os.getenv("STORE_PROXY") or "").rstrip("/"),
        store_port=_optional_int(os.getenv("STORE_PORT")),
        store_region=os.getenv("STORE_REGION") or "us-west-000",
        store_checksums=_bool(os.getenv("STORE_CHECKSUMS"), True),
        bypass_urls=_list(os.getenv("BYPASS_URLS")),
        log_rewrites=_bool(os.getenv("LOG_REWRITES"), False),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        multisite=_bool(os.getenv("MULTISITE"), False),
        path_current_site=os.getenv("PATH_CURRENT_SITE") or "/",
        site_id_current_site=_int(os.getenv("SITE_ID_CURRENT_SITE"), 1) or 1,
        blog_id_current_site=_int(os.getenv("BLOG_ID_CURRENT_SITE"), 1) or 1,
        database_url=os.getenv("DATABASE_URL", ""),
        uploads_dir=(os.getenv("UPLOADS_DIR") or os.path.join(os.getcwd(), "uploads")).rstrip("/\\"),
        uploads_url=(os.getenv("UPLOADS_URL") or f"{home_url}/app/uploads").rstrip("/"),
        cookie_domain=(os.getenv("COOKIE_DOMAIN") or "").strip().lower(),
        admin_cookie_path=os.getenv("ADMIN_COOKIE_PATH") or "/wp-admin",
        upload_wait_retries=max(1, _int(os.getenv("UPLOAD_WAIT_RETRIES"), 10)),
        upload_wait_interval=max(0.0, _float(os.getenv("UPLOAD_WAIT_INTERVAL"), 0.1)),
    )
