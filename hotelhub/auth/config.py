"""Authentication configuration.

Environment-aware configuration that enforces security
requirements based on deployment mode.
"""

import os
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class AuthMode(str, Enum):
    """Authentication mode based on environment."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TEST = "test"


class AuthConfig(BaseModel):
    """Authentication configuration.

    Security rules:
    - Production: signed JWT bearer tokens required, header auth forbidden
    - Staging/Development/Test: header auth may be enabled
    """

    mode: AuthMode = Field(
        default=AuthMode.DEVELOPMENT,
        description="Environment mode determining auth requirements"
    )

    # JWT bearer tokens
    jwt_secret: str | None = Field(
        default=None,
        description="Shared secret (HS*) or PEM public key (RS*/ES*)"
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_audience: str | None = Field(default=None, description="Expected aud claim")
    jwt_issuer: str | None = Field(default=None, description="Expected iss claim")
    token_clock_skew_seconds: int = Field(
        default=30,
        description="Allowed clock skew for token validation"
    )

    # Development header auth (NEVER in production)
    allow_header_auth: bool = Field(
        default=False,
        description="Allow X-User-ID header auth (dev only)"
    )
    header_auth_org_allowlist: list[str] = Field(
        default_factory=list,
        description="Allowed organization ids for header auth"
    )

    @model_validator(mode="after")
    def validate_production_security(self) -> "AuthConfig":
        """Enforce security requirements for production."""
        if self.mode == AuthMode.PRODUCTION:
            if self.allow_header_auth:
                raise ValueError(
                    "SECURITY ERROR: Header-based authentication is forbidden "
                    "in production. Configure JWT verification."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "SECURITY ERROR: Production mode requires a JWT verification key. "
                    "Set HOTELHUB_JWT_SECRET."
                )
        return self

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Create configuration from environment variables."""
        mode = AuthMode(os.getenv("HOTELHUB_AUTH_MODE", "development").lower())
        allowlist = os.getenv("HOTELHUB_HEADER_AUTH_ORGS", "")

        return cls(
            mode=mode,
            jwt_secret=os.getenv("HOTELHUB_JWT_SECRET"),
            jwt_algorithm=os.getenv("HOTELHUB_JWT_ALGORITHM", "HS256"),
            jwt_audience=os.getenv("HOTELHUB_JWT_AUDIENCE"),
            jwt_issuer=os.getenv("HOTELHUB_JWT_ISSUER"),
            allow_header_auth=os.getenv("HOTELHUB_ALLOW_HEADER_AUTH", "false").lower() == "true",
            header_auth_org_allowlist=[o.strip() for o in allowlist.split(",") if o.strip()],
        )

    def get_provider_type(self) -> Literal["jwt", "header", "none"]:
        """Determine which auth provider to use."""
        if self.jwt_secret:
            return "jwt"
        elif self.allow_header_auth and self.mode != AuthMode.PRODUCTION:
            return "header"
        else:
            return "none"

    def is_secure(self) -> bool:
        return self.get_provider_type() == "jwt"
