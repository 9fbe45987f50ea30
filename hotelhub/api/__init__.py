"""HotelHub Access API.

Tenant-scoped authorization for hotel operations: permission and role
administration plus tenant-isolated staff records.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hotelhub import __version__
from hotelhub.api.config import Settings
from hotelhub.api.services import Services, build_services
from hotelhub.auth import AuthMiddleware, get_auth_provider
from hotelhub.errors import AppError, PermissionDenied, SecurityViolation
from hotelhub.tenancy.middleware import TenantMiddleware

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = __version__
    catalog_version: int
    cache_enabled: bool


async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    # Authorization answers must never be served from an HTTP cache
    if request.url.path.startswith(("/permissions", "/staff")):
        response.headers["Cache-Control"] = "no-store, max-age=0"

    return response


async def _maintenance_loop(services: Services, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await services.run_maintenance()
        except Exception:
            logger.exception("Maintenance run failed")


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI):
    services: Services = app.state.services
    task = asyncio.create_task(
        _maintenance_loop(services, services.settings.maintenance_interval_seconds)
    )
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, PermissionDenied):
        logger.info(
            "Permission denied: path=%s permission=%s reason=%s",
            request.url.path,
            exc.permission,
            getattr(exc.reason, "value", exc.reason),
        )
    elif isinstance(exc, SecurityViolation):
        logger.error("Security violation surfaced at path=%s entity=%s", request.url.path, exc.entity)
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the API application.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        services: Pre-built services (tests inject these); built from
            settings when omitted
    """
    settings = settings or (services.settings if services else Settings())
    services = services or build_services(settings)

    app = FastAPI(
        title=settings.api_title,
        description="Tenant-scoped role and attribute based access control for hotel operations.",
        version=settings.api_version,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=_lifespan,
    )
    app.state.services = services
    app.state.settings = settings

    app.add_exception_handler(AppError, _app_error_handler)

    # Starlette runs the last-added middleware first: tenant resolution
    # is added before auth so it sees request.state.user.
    app.add_middleware(TenantMiddleware, resolver=services.resolver)
    app.add_middleware(AuthMiddleware, provider=get_auth_provider(settings.auth_config))
    app.middleware("http")(add_security_headers)

    origins = settings.cors_origins
    if settings.is_production and "*" in origins:
        origins = []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Request-ID",
            "X-Act-As-Organization",
            "X-Act-As-Property",
        ],
    )

    from hotelhub.api.permissions import router as permissions_router
    from hotelhub.api.staff import router as staff_router

    app.include_router(permissions_router)
    app.include_router(staff_router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint (no auth required)."""
        return HealthResponse(
            catalog_version=services.catalog.version,
            cache_enabled=services.cache.enabled,
        )

    logger.info(
        "HotelHub API created: auth=%s cache=%s audit=%s",
        settings.auth_config.get_provider_type(),
        settings.permission_cache_enabled,
        settings.audit_storage_type if settings.audit_enabled else "off",
    )
    return app


__all__ = ["create_app", "Settings", "Services", "build_services"]
