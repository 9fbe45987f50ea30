"""Tenant middleware for request-level context.

Resolves the TenantContext right after authentication and stores it on
request.state for the lifetime of the request only.
"""

from __future__ import annotations

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from hotelhub.errors import AppError, AuthError
from hotelhub.tenancy.context import ActAs, TenantContext, TenantContextResolver

logger = logging.getLogger(__name__)

ACT_AS_ORGANIZATION_HEADER = "X-Act-As-Organization"
ACT_AS_PROPERTY_HEADER = "X-Act-As-Property"


def extract_act_as(request: Request) -> ActAs | None:
    """Read a platform act-as request from headers, if any."""
    organization_id = request.headers.get(ACT_AS_ORGANIZATION_HEADER)
    property_id = request.headers.get(ACT_AS_PROPERTY_HEADER)
    if not organization_id:
        if property_id:
            raise ValueError(f"{ACT_AS_PROPERTY_HEADER} requires {ACT_AS_ORGANIZATION_HEADER}")
        return None
    return ActAs(organization_id=organization_id, property_id=property_id or None)


class TenantMiddleware(BaseHTTPMiddleware):
    """Resolves the tenant context for authenticated requests.

    Must run after AuthMiddleware (add it to the app first).
    Resolution failures are rendered as a generic 403.
    """

    # Paths that don't require tenant context
    EXCLUDED_PATHS = {
        "/",
        "/health",
        "/docs",
        "/openapi.json",
        "/redoc",
    }

    def __init__(self, app, resolver: TenantContextResolver):
        super().__init__(app)
        self.resolver = resolver

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        user = getattr(request.state, "user", None)
        if user is None:
            return await call_next(request)

        try:
            act_as = extract_act_as(request)
        except ValueError as e:
            logger.warning("Rejected act-as headers for user=%s: %s", user.user_id, e)
            return JSONResponse(status_code=400, content={"error": "bad_request", "message": str(e)})

        try:
            context = await self.resolver.resolve(
                user, act_as, correlation_id=request.headers.get("X-Request-ID")
            )
        except AppError as e:
            logger.info(
                "Tenant context refused for user=%s: %s",
                user.user_id,
                type(e).__name__,
            )
            return JSONResponse(status_code=e.http_status, content=e.to_response())

        request.state.tenant_context = context
        return await call_next(request)


def get_tenant_context(request: Request) -> TenantContext:
    """FastAPI dependency returning the request's TenantContext."""
    context = getattr(request.state, "tenant_context", None)
    if context is None:
        raise AuthError()
    return context
