"""JWT bearer token authentication.

Verifies signed tokens issued by the platform's identity service with
PyJWT and maps the tenancy claims onto the principal.
"""

import logging
from typing import Any

import jwt
from pydantic import ValidationError

from hotelhub.auth.models import (
    AuthenticatedUser,
    InvalidTokenError,
    MissingTokenError,
    TokenClaims,
    TokenExpiredError,
)
from hotelhub.auth.providers.base import AuthProvider

logger = logging.getLogger(__name__)

_STANDARD_CLAIMS = {
    "sub", "iss", "aud", "exp", "iat", "nbf", "jti",
    "org_id", "property_id", "department_id", "role", "custom_roles",
    "email", "name",
}


class BearerTokenProvider(AuthProvider):
    """Validates `Authorization: Bearer <jwt>` headers."""

    def __init__(
        self,
        key: str,
        algorithm: str = "HS256",
        audience: str | None = None,
        issuer: str | None = None,
        clock_skew: int = 30,
    ):
        self.key = key
        self.algorithm = algorithm
        self.audience = audience
        self.issuer = issuer
        self.clock_skew = clock_skew

    @property
    def provider_name(self) -> str:
        return "jwt"

    @property
    def is_secure(self) -> bool:
        return True

    async def authenticate(self, request: Any) -> AuthenticatedUser:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            raise MissingTokenError()

        if not auth_header.startswith("Bearer "):
            raise InvalidTokenError("Invalid Authorization header format")

        token = auth_header[7:]
        if not token:
            raise MissingTokenError()

        claims = await self.validate_token(token)
        return AuthenticatedUser.from_claims(claims, self.provider_name)

    async def validate_token(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.clock_skew,
                options={"require": ["sub", "exp", "iat"], "verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidIssuerError:
            raise InvalidTokenError("Invalid token issuer")
        except jwt.InvalidAudienceError:
            raise InvalidTokenError("Invalid token audience")
        except jwt.InvalidSignatureError:
            raise InvalidTokenError("Invalid token signature")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Failed to decode token: {e}")

        try:
            return TokenClaims(
                **{k: v for k, v in payload.items() if k in _STANDARD_CLAIMS},
                extra={k: v for k, v in payload.items() if k not in _STANDARD_CLAIMS},
            )
        except ValidationError as e:
            logger.warning("Token claims rejected: %d errors", e.error_count())
            raise InvalidTokenError("Token claims are invalid")
