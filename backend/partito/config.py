"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./partito.db"
    CORS_ORIGINS: str = "http://localhost:5173,https://partito.org"
    LOG_LEVEL: str = "INFO"

    # Public URLs
    SITE_URL: str = "https://partito.org"
    SHARE_URL: str = "https://share.partito.org"
    CALENDAR_FEED_URL: str = "https://api.partito.org"

    # Outbound email (Resend)
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "Partito <noreply@partito.org>"
    CONTACT_EMAIL: str = "hello@partito.org"
    EMAIL_TIMEOUT_SECONDS: float = 10.0
    NOTIFICATION_MAX_AGE_MINUTES: int = 5

    # Event creation limits
    EVENT_RATE_LIMIT_WINDOW_MINUTES: int = 60
    EVENT_RATE_LIMIT_MAX: int = 5

    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_AUTO_DELETE_DAYS: int = 30

    # Shared secret for the retention purge endpoint; empty disables it
    ADMIN_TOKEN: str = ""

    class Config:
        env_file = ".env"


settings = Settings()
