"""FastAPI authentication middleware.

Verifies the caller and injects the principal into request.state.user.
Tenant resolution happens afterwards in hotelhub.tenancy.middleware.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from hotelhub.auth.models import (
    AuthenticatedUser,
    AuthenticationError,
    MissingTokenError,
    TokenExpiredError,
)
from hotelhub.auth.providers.base import AuthProvider
from hotelhub.errors import AuthError

logger = logging.getLogger(__name__)

# Paths served without a principal
PUBLIC_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


def _challenge_response(error: AuthenticationError) -> JSONResponse:
    if isinstance(error, MissingTokenError):
        body = ("authentication_required", "No authentication credentials provided")
        challenge = "Bearer"
    elif isinstance(error, TokenExpiredError):
        body = ("token_expired", "Authentication token has expired")
        challenge = 'Bearer error="invalid_token"'
    else:
        body = ("authentication_failed", error.message)
        challenge = "Bearer"

    return JSONResponse(
        status_code=401,
        content={"error": body[0], "message": body[1], "code": error.code},
        headers={"WWW-Authenticate": challenge},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticates every non-public request.

    Usage:
        provider = get_auth_provider(config)
        app.add_middleware(AuthMiddleware, provider=provider)

    Rejections are 401s carrying a WWW-Authenticate challenge; the
    provider's message is only echoed for malformed credentials.
    """

    def __init__(
        self,
        app,
        provider: AuthProvider,
        public_paths: frozenset[str] | set[str] = PUBLIC_PATHS,
    ):
        super().__init__(app)
        self.provider = provider
        self.public_paths = frozenset(public_paths)

        logger.info(
            "AuthMiddleware using provider=%s secure=%s",
            provider.provider_name,
            provider.is_secure,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.public_paths:
            return await call_next(request)

        try:
            user = await self.provider.authenticate(request)
        except AuthenticationError as e:
            logger.warning("Rejected credentials on %s: code=%s", path, e.code)
            return _challenge_response(e)

        request.state.user = user
        logger.debug(
            "Authenticated user=%s org=%s role=%s path=%s",
            user.user_id,
            user.organization_id,
            user.role.value,
            path,
        )
        return await call_next(request)


def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency returning the verified principal.

    Raises AuthError (401) when the request bypassed authentication.
    """
    user = getattr(request.state, "user", None)
    if user is None:
        raise AuthError()
    return user
