"""HotelHub access layer.

Tenant-scoped authorization and data isolation for a multi-tenant
hotel-operations platform.
"""

__version__ = "1.0.0"
