"""API configuration via pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="HOTELHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # API configuration
    api_title: str = "HotelHub Access API"
    api_version: str = "1.0.0"
    cors_origins: list[str] = ["http://localhost:3000"]

    # === AUTH SETTINGS ===
    auth_mode: Literal["production", "staging", "development", "test"] = "development"
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None
    jwt_issuer: str | None = None

    # Development auth (NEVER enable in production)
    allow_header_auth: bool = True

    # === AUTHORIZATION SETTINGS ===
    permission_cache_enabled: bool = True
    permission_cache_ttl_seconds: int = 300
    permission_cache_max_entries: int = 10000
    # `resource.action` patterns the platform-admin bypass never covers
    non_bypassable_actions: list[str] = [
        "organization.delete",
        "property.delete",
        "audit.purge",
        "user.purge",
    ]
    audit_authz_denials: bool = True
    # Interval of the background sweep for expired grants and cache entries
    maintenance_interval_seconds: int = 3600

    # === AUDIT SETTINGS ===
    audit_enabled: bool = True
    audit_storage_type: Literal["memory", "file"] = "file"
    audit_storage_path: str = "data/audit"

    # === DATA SETTINGS ===
    # SQLAlchemy URL; the in-memory data source is used when unset
    database_url: str | None = None

    @property
    def is_production(self) -> bool:
        return self.auth_mode == "production"

    @property
    def auth_config(self):
        """Get auth configuration object."""
        from hotelhub.auth.config import AuthConfig, AuthMode

        return AuthConfig(
            mode=AuthMode(self.auth_mode),
            jwt_secret=self.jwt_secret,
            jwt_algorithm=self.jwt_algorithm,
            jwt_audience=self.jwt_audience,
            jwt_issuer=self.jwt_issuer,
            allow_header_auth=self.allow_header_auth and not self.is_production,
        )
