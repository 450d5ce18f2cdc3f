"""
Application Configuration
"""
from decimal import Decimal
from pydantic_settings import BaseSettings
from typing import List
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "ERP Ledger Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite:///./ledger.db"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Reconciliation
    DRIFT_TOLERANCE: Decimal = Decimal("0.01")
    RECONCILIATION_CLAMP_NEGATIVE: bool = False

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            # Convert file: URL to SQLite URL
            path = url[5:]
            return f"sqlite:///{path}"
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() == "production"

    def validate_settings(self):
        """Refuse unsafe production settings and warn about questionable ones"""
        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        if self.is_production and self.database_url.startswith("sqlite"):
            warnings.warn(
                "WARNING: SQLite does not provide row-level locking. "
                "Concurrent settlements against the same party or account may interleave.",
                UserWarning
            )

        if self.DRIFT_TOLERANCE < 0:
            raise ValueError("DRIFT_TOLERANCE must not be negative")

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

try:
    settings.validate_settings()
except ValueError as e:
    if settings.is_production:
        raise
    else:
        warnings.warn(str(e), UserWarning)
