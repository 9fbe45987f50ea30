"""Authentication providers.

Pluggable authentication backends:
- BearerToken: signed JWT bearer tokens
- DevHeader: Development-only header-based auth
"""

from hotelhub.auth.providers.base import AuthProvider
from hotelhub.auth.providers.bearer import BearerTokenProvider
from hotelhub.auth.providers.dev_header import DevHeaderProvider

__all__ = [
    "AuthProvider",
    "BearerTokenProvider",
    "DevHeaderProvider",
]
