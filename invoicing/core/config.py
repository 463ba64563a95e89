"""Application configuration"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Invoicing API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours
    PASSWORD_RESET_EXPIRATION_MINUTES: int = 60

    # Database
    DATABASE_URL: str

    # Redis (token blacklist)
    REDIS_URL: str = "redis://localhost:6379/0"

    # URLs
    # WHY: Checkout success/cancel redirects and emailed payment links both
    # point at the front end's public payment page.
    FRONTEND_URL: str = "http://localhost:3000"

    # Stripe
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_API_VERSION: str = "2023-10-16"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Email (Resend). Without an API key emails are logged, not sent.
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: Optional[str] = None

    # Admin bootstrap (invoicing-seed)
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: Optional[str] = None
    ADMIN_NAME: str = "Administrator"

    # Invoicing
    DEFAULT_CURRENCY: str = "USD"
    INVOICE_DEFAULT_DUE_DAYS: int = 30
    INVOICE_NUMBER_MAX_ATTEMPTS: int = 5

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
