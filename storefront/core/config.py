"""
Storefront client configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Storefront"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Remote commerce API
    API_BASE_URL: str = "http://localhost:5000/api"
    REQUEST_TIMEOUT: float = 10.0

    # Durable key/value storage
    STORAGE_URL: str = "sqlite:///./data/storefront.db"

    # Credential encryption at rest
    SECRET_KEY: str = "storefront-development-secret-change-me"
    ENCRYPT_CREDENTIALS: bool = True
    ENCRYPTION_KDF_ITERATIONS: int = 300_000

    # Role namespaces (first path segment of a request)
    ADMIN_NAMESPACE: str = "admin"
    SELLER_NAMESPACE: str = "seller"

    # Authentication endpoints
    REFRESH_PATH: str = "/auth/refresh"
    AUTH_EXEMPT_PATHS: List[str] = [
        "/auth/login",
        "/auth/register",
        "/auth/refresh",
        "/auth/logout",
        "/admin/login",
        "/seller/login",
        "/seller/register",
    ]

    # Login surfaces a role is sent back to when its session ends
    ADMIN_LOGIN_ROUTE: str = "/admin/login"
    SELLER_LOGIN_ROUTE: str = "/seller/login"
    CUSTOMER_LOGIN_ROUTE: str = "/login"

    # Price drift below this is treated as unchanged
    PRICE_EPSILON: float = 0.01

    # Logging
    STRUCTURED_LOGGING: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    @field_validator("ADMIN_NAMESPACE", "SELLER_NAMESPACE")
    @classmethod
    def normalize_namespace(cls, value: str) -> str:
        return value.strip("/").lower()


# Global settings instance
settings = Settings()
