"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_INSECURE_SECRET_MARKERS = {
    "",
    "dev-access-secret-change-in-production-use-openssl-rand-hex-32",
    "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32",
    "dev-guest-secret-change-in-production-use-openssl-rand-hex-32",
    "change-me",
}


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "PhotoShare API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "photoshare_db"
    POSTGRES_USER: str = "photoshare"
    POSTGRES_PASSWORD: str = "photoshare"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Token signing, one secret per token kind
    ACCESS_TOKEN_SECRET: str = "dev-access-secret-change-in-production-use-openssl-rand-hex-32"
    REFRESH_TOKEN_SECRET: str = "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32"
    GUEST_TOKEN_SECRET: str = "dev-guest-secret-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 1
    REFRESH_TOKEN_REMEMBER_DAYS: int = 30
    REFRESH_TOKEN_MAX_DAYS: int = 90
    GUEST_TOKEN_EXPIRE_DAYS: int = 30

    # Cookies
    ACCESS_COOKIE_NAME: str = "access_token"
    REFRESH_COOKIE_NAME: str = "refresh_token"
    GUEST_COOKIE_NAME: str = "guest_access"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth"
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "lax"

    # Renew an expired access cookie from the refresh cookie during resolution
    SESSION_AUTO_REFRESH: bool = True

    # API key policy
    API_KEY_PREFIX: str = "kp_"
    API_KEY_SECRET_LENGTH: int = 32
    API_KEY_LOOKUP_PREFIX_LENGTH: int = 8
    API_KEY_RATE_LIMIT_PER_MINUTE: int = 60
    API_KEY_RATE_LIMIT_PER_DAY: int = 2000
    MAX_API_KEYS_PER_USER: int = 3

    # Google sign-in
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_JWKS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"
    GOOGLE_JWKS_CACHE_SECONDS: int = 3600

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        secrets = {
            "ACCESS_TOKEN_SECRET": self.ACCESS_TOKEN_SECRET,
            "REFRESH_TOKEN_SECRET": self.REFRESH_TOKEN_SECRET,
            "GUEST_TOKEN_SECRET": self.GUEST_TOKEN_SECRET,
        }
        for name, value in secrets.items():
            if value in _INSECURE_SECRET_MARKERS or len(value) < 32:
                raise ValueError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )

        if len(set(secrets.values())) != len(secrets):
            raise ValueError("Access, refresh and guest token secrets must all differ.")

        if not self.COOKIE_SECURE:
            raise ValueError("COOKIE_SECURE must be enabled in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
