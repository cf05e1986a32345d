import logging

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from urlfixer.core.config import Settings, get_settings
from urlfixer.core.logging import configure_logging
from urlfixer.routers import hooks as hooks_router
from urlfixer.routers import urls as urls_router
from urlfixer.services.offload_service import MediaOffloader
from urlfixer.services.rewriter import Rewriter
from urlfixer.services.tenant_service import TenantService

logger = logging.getLogger(__name__)


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Resolve the tenant once per request and give the request its own Rewriter.

    Redirect responses get their Location header passed through the same
    Rewriter, which covers login and generic redirects.
    """

    def __init__(self, app, *, settings: Settings, tenant_service: TenantService) -> None:
        super().__init__(app)
        self._settings = settings
        self._tenant_service = tenant_service

    async def dispatch(self, request, call_next):
        host = request.headers.get("host") or ""
        context = await run_in_threadpool(self._tenant_service.build_context, host)
        rewriter = Rewriter(self._settings, context.tenant)
        request.state.context = context
        request.state.rewriter = rewriter

        response = await call_next(request)
        location = response.headers.get("location")
        if location and 300 <= response.status_code < 400:
            response.headers["location"] = rewriter.rewrite(location)
        return response


def create_app(
    settings: Settings | None = None,
    *,
    tenant_service: TenantService | None = None,
    offloader: MediaOffloader | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    if not settings.production_domain:
        logger.warning("PRODUCTION_DOMAIN is not set. Please check your environment.")

    app = FastAPI(title="URL Fixer")
    app.state.settings = settings
    app.state.tenant_service = tenant_service or TenantService(settings)
    app.state.offloader = offloader or MediaOffloader(settings)

    app.add_middleware(
        TenantContextMiddleware,
        settings=settings,
        tenant_service=app.state.tenant_service,
    )
    app.include_router(urls_router.router)
    app.include_router(hooks_router.router)
    return app
