"""Authentication data models.

The verified principal passed to the tenancy and authorization layers.
Token verification itself lives in the providers.
"""

from __future__ import annotations

from datetime import datetime, UTC
from typing import Any

from pydantic import BaseModel, Field

from hotelhub.authz.models import SystemRole


class TokenClaims(BaseModel):
    """JWT claims with HotelHub tenancy extensions.

    Standard claims (RFC 7519): sub, iss, aud, exp, iat, nbf, jti.

    Tenancy claims:
    - org_id: Organization the user belongs to
    - property_id: Assigned property, if any
    - department_id: Assigned department, if any
    - role: System role
    - custom_roles: Custom role ids assigned within the organization
    """

    # Standard claims
    sub: str = Field(description="Subject - unique user identifier")
    iss: str | None = Field(default=None, description="Issuer")
    aud: str | list[str] | None = Field(default=None, description="Audience")
    exp: int = Field(description="Expiration time (Unix timestamp)")
    iat: int = Field(description="Issued at time (Unix timestamp)")
    nbf: int | None = Field(default=None, description="Not before time")
    jti: str | None = Field(default=None, description="JWT ID - unique identifier")

    # Tenancy claims
    org_id: str | None = Field(default=None, description="Organization identifier")
    property_id: str | None = Field(default=None, description="Assigned property")
    department_id: str | None = Field(default=None, description="Assigned department")
    role: SystemRole = Field(default=SystemRole.STAFF, description="System role")
    custom_roles: list[str] = Field(default_factory=list, description="Custom role ids")
    email: str | None = Field(default=None, description="User's email")
    name: str | None = Field(default=None, description="User's display name")

    extra: dict[str, Any] = Field(default_factory=dict)

    def is_expired(self) -> bool:
        return datetime.now(UTC).timestamp() > self.exp


class AuthenticatedUser(BaseModel):
    """Verified user identity.

    This is the principal handed to the tenant context resolver. It is a
    verified identity, never a raw token.
    """

    # Core identity
    user_id: str = Field(description="Unique user identifier")
    email: str | None = Field(default=None, description="User's email")
    name: str | None = Field(default=None, description="User's display name")

    # Tenancy
    organization_id: str | None = Field(default=None, description="Organization")
    property_id: str | None = Field(default=None, description="Assigned property")
    department_id: str | None = Field(default=None, description="Assigned department")

    # Authorization context
    role: SystemRole = Field(description="System role")
    custom_role_ids: list[str] = Field(default_factory=list, description="Custom roles")

    # Token metadata
    token_exp: datetime | None = Field(default=None, description="When the token expires")
    token_iat: datetime | None = Field(default=None, description="When the token was issued")

    # Auth provider info
    auth_provider: str = Field(description="Provider: 'jwt', 'dev_header'")
    session_id: str | None = Field(default=None, description="Session identifier")

    @classmethod
    def from_claims(cls, claims: TokenClaims, provider: str) -> AuthenticatedUser:
        """Create AuthenticatedUser from validated token claims."""
        return cls(
            user_id=claims.sub,
            email=claims.email,
            name=claims.name,
            organization_id=claims.org_id,
            property_id=claims.property_id,
            department_id=claims.department_id,
            role=claims.role,
            custom_role_ids=claims.custom_roles,
            token_exp=datetime.fromtimestamp(claims.exp, UTC),
            token_iat=datetime.fromtimestamp(claims.iat, UTC),
            auth_provider=provider,
            session_id=claims.jti,
        )

    @property
    def is_platform_admin(self) -> bool:
        return self.role == SystemRole.PLATFORM_ADMIN


class AuthenticationError(Exception):
    """Raised when authentication fails."""

    def __init__(self, message: str, code: str = "auth_failed"):
        self.message = message
        self.code = code
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    def __init__(self):
        super().__init__("Token has expired", "token_expired")


class InvalidTokenError(AuthenticationError):
    def __init__(self, reason: str = "Token validation failed"):
        super().__init__(reason, "invalid_token")


class MissingTokenError(AuthenticationError):
    def __init__(self):
        super().__init__("No authentication token provided", "missing_token")
