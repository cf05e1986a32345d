from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import pytest

# Make the urlfixer package importable when running the tests from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from urlfixer.core import config as core_config  # noqa: E402
from urlfixer.db import create_tables  # noqa: E402
from urlfixer.db import session as db_session  # noqa: E402

ENV_VARS = (
    "APP_ENV", "HOME_URL", "PROXY_PORT", "PRODUCTION_DOMAIN", "SUBDOMAIN_SUFFIX",
    "STORE_URL", "STORE_BUCKET", "STORE_KEY", "STORE_SECRET", "STORE_PROXY", "STORE_PORT",
    "STORE_REGION", "STORE_CHECKSUMS", "BYPASS_URLS", "LOG_REWRITES", "LOG_LEVEL", "MULTISITE",
    "PATH_CURRENT_SITE", "SITE_ID_CURRENT_SITE", "BLOG_ID_CURRENT_SITE", "DATABASE_URL",
    "UPLOADS_DIR", "UPLOADS_URL", "COOKIE_DOMAIN", "ADMIN_COOKIE_PATH",
    "UPLOAD_WAIT_RETRIES", "UPLOAD_WAIT_INTERVAL",
)


@pytest.fixture()
def clean_env(monkeypatch):
    """Drop every URL fixer variable from the environment and reset cached settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()
    yield monkeypatch
    core_config.get_settings.cache_clear()


@pytest.fixture()
def make_settings(clean_env):
    """Build Settings from a clean environment plus keyword overrides."""
    def _make(env: dict | None = None, **overrides):
        for name, value in (env or {}).items():
            clean_env.setenv(name, str(value))
        core_config.get_settings.cache_clear()
        settings = core_config.get_settings()
        return dataclasses.replace(settings, **overrides) if overrides else settings

    return _make


def _reset_engine_caches() -> None:
    db_session._engine_for.cache_clear()  # type: ignore[attr-defined]
    db_session._sessionmaker_for.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def temp_db(tmp_path, clean_env):
    """Temporary SQLite tenant directory; caches are reset so DATABASE_URL is re-read."""
    db_file = tmp_path / "test.db"
    clean_env.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    core_config.get_settings.cache_clear()
    _reset_engine_caches()

    settings = core_config.get_settings()
    create_tables.drop_all(settings)
    create_tables.create_all(settings)
    engine = db_session.get_engine(settings)

    yield db_file

    try:
        create_tables.drop_all(settings)
    except Exception:
        pass
    try:
        engine.dispose()
    except Exception:
        pass
    _reset_engine_caches()
