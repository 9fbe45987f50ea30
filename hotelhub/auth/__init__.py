"""HotelHub Authentication Package.

Supplies the verified principal consumed by the tenancy and
authorization layers:
- JWT bearer token verification
- Environment-gated development header auth

Usage:
    from hotelhub.auth import get_auth_provider, AuthMiddleware

    provider = get_auth_provider(config)
    app.add_middleware(AuthMiddleware, provider=provider)
"""

from hotelhub.auth.config import AuthConfig, AuthMode
from hotelhub.auth.models import AuthenticatedUser, TokenClaims
from hotelhub.auth.middleware import AuthMiddleware, get_current_user
from hotelhub.auth.providers.base import AuthProvider

__all__ = [
    "AuthConfig",
    "AuthMode",
    "AuthenticatedUser",
    "TokenClaims",
    "AuthMiddleware",
    "AuthProvider",
    "get_auth_provider",
    "get_current_user",
]


def get_auth_provider(config: AuthConfig) -> AuthProvider:
    """Get the appropriate auth provider based on configuration."""
    from hotelhub.auth.providers.bearer import BearerTokenProvider
    from hotelhub.auth.providers.dev_header import DevHeaderProvider

    provider_type = config.get_provider_type()
    if provider_type == "jwt":
        return BearerTokenProvider(
            key=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            audience=config.jwt_audience,
            issuer=config.jwt_issuer,
            clock_skew=config.token_clock_skew_seconds,
        )
    elif provider_type == "header":
        return DevHeaderProvider(org_allowlist=config.header_auth_org_allowlist or None)
    else:
        raise ValueError("No valid auth provider configured")
