from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Villa Booking API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS (e.g. https://valarvillas.com,https://admin.valarvillas.com). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "reservations@villas.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    PUBLIC_SITE_URL: str = ""  # e.g. https://valarvillas.com - used in confirmation emails

    # Stripe embedded checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_SANDBOX: bool = False  # If True, skip the real Stripe call and return a fake session (for dev without keys)

    # Stripe accepts expires_at between 30 minutes and 24 hours out; keep clear of both ends
    CHECKOUT_SESSION_TTL_MINUTES: int = 60

    @field_validator("CHECKOUT_SESSION_TTL_MINUTES", mode="after")
    @classmethod
    def clamp_checkout_ttl(cls, v: int) -> int:
        return min(max(v, 31), 24 * 60 - 1)


settings = Settings()
