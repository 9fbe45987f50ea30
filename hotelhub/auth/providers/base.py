"""Abstract base class for authentication providers.

All auth providers must implement this interface.
"""

from abc import ABC, abstractmethod
from typing import Any

from hotelhub.auth.models import AuthenticatedUser, TokenClaims


class AuthProvider(ABC):
    """Abstract authentication provider.

    Implementations:
    - BearerTokenProvider: signed JWT bearer tokens
    - DevHeaderProvider: Development-only header auth
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'jwt')."""
        pass

    @property
    @abstractmethod
    def is_secure(self) -> bool:
        """Return whether this provider is secure for production."""
        pass

    @abstractmethod
    async def authenticate(self, request: Any) -> AuthenticatedUser:
        """Authenticate a request and return the verified principal.

        Raises:
            AuthenticationError: If authentication fails
            MissingTokenError: If no credentials provided
            InvalidTokenError: If credentials are invalid
            TokenExpiredError: If credentials are expired
        """
        pass

    @abstractmethod
    async def validate_token(self, token: str) -> TokenClaims:
        """Validate a token and extract claims."""
        pass
