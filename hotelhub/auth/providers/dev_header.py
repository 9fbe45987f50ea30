"""Development-only header-based authentication.

WARNING: This provider is NOT SECURE and must NEVER be used in production.

In development mode, this provider accepts:
- X-User-ID: User identifier (required)
- X-Organization-ID: Organization identifier
- X-Property-ID / X-Department-ID: Tenant assignments
- X-User-Role: System role (default: staff)
- X-Custom-Roles: Comma-separated custom role ids
"""

import logging
from datetime import datetime, timedelta, UTC
from typing import Any

from pydantic import ValidationError

from hotelhub.auth.models import (
    AuthenticatedUser,
    AuthenticationError,
    MissingTokenError,
    TokenClaims,
)
from hotelhub.auth.providers.base import AuthProvider
from hotelhub.authz.models import SystemRole

logger = logging.getLogger(__name__)


class DevHeaderProvider(AuthProvider):
    """Development-only header-based authentication.

    SECURITY WARNING:
    This provider trusts client-provided headers without verification.

    Usage in development:
        curl -H "X-User-ID: u-1" -H "X-Organization-ID: org-a" -H "X-User-Role: staff" ...
    """

    def __init__(self, org_allowlist: list[str] | None = None):
        self.org_allowlist = org_allowlist

        logger.warning(
            "DevHeaderProvider is ACTIVE. This authentication method is NOT SECURE. "
            "Ensure HOTELHUB_AUTH_MODE != 'production'."
        )

    @property
    def provider_name(self) -> str:
        return "dev_header"

    @property
    def is_secure(self) -> bool:
        return False

    async def authenticate(self, request: Any) -> AuthenticatedUser:
        user_id = request.headers.get("X-User-ID")
        if not user_id:
            raise MissingTokenError()

        organization_id = request.headers.get("X-Organization-ID")
        if self.org_allowlist and organization_id not in self.org_allowlist:
            raise AuthenticationError(
                f"Organization '{organization_id}' not in development allowlist",
                code="organization_not_allowed"
            )

        role_header = request.headers.get("X-User-Role", SystemRole.STAFF.value)
        try:
            role = SystemRole(role_header.strip().lower())
        except ValueError:
            raise AuthenticationError(f"Unknown role '{role_header}'", code="invalid_role")

        custom_roles = [
            r.strip() for r in request.headers.get("X-Custom-Roles", "").split(",") if r.strip()
        ]

        now = datetime.now(UTC)
        try:
            return AuthenticatedUser(
                user_id=user_id,
                email=request.headers.get("X-User-Email", f"{user_id}@dev.local"),
                name=user_id,
                organization_id=organization_id,
                property_id=request.headers.get("X-Property-ID"),
                department_id=request.headers.get("X-Department-ID"),
                role=role,
                custom_role_ids=custom_roles,
                token_exp=now + timedelta(hours=24),
                token_iat=now,
                auth_provider=self.provider_name,
            )
        except ValidationError as e:
            raise AuthenticationError(f"Invalid identity headers: {e.error_count()} errors")

    async def validate_token(self, token: str) -> TokenClaims:
        """Not applicable for header auth."""
        raise NotImplementedError(
            "DevHeaderProvider does not use tokens. "
            "Use authenticate() with request object instead."
        )
