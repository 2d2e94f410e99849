"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="ApexCare API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Stripe (card payments)
    stripe_secret_key: str | None = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_api_url: str = Field(default="https://api.stripe.com/v1", alias="STRIPE_API_URL")
    stripe_currency: str = Field(default="usd", alias="STRIPE_CURRENCY")

    # M-Pesa Daraja (mobile money)
    mpesa_consumer_key: str | None = Field(default=None, alias="MPESA_CONSUMER_KEY")
    mpesa_consumer_secret: str | None = Field(default=None, alias="MPESA_CONSUMER_SECRET")
    mpesa_business_shortcode: str | None = Field(default=None, alias="MPESA_BUSINESS_SHORTCODE")
    mpesa_passkey: str | None = Field(default=None, alias="MPESA_PASSKEY")
    mpesa_api_url: str = Field(default="https://sandbox.safaricom.co.ke", alias="MPESA_API_URL")
    mpesa_callback_url: str = Field(
        default="https://apexcare.com/api/v1/payments/mpesa/callback",
        alias="MPESA_CALLBACK_URL",
    )
    mpesa_currency: str = Field(default="KES", alias="MPESA_CURRENCY")
    # Refresh the OAuth token this many seconds before it actually expires
    mpesa_token_expiry_margin_seconds: int = Field(
        default=60, alias="MPESA_TOKEN_EXPIRY_MARGIN_SECONDS"
    )

    # Resend (transactional email)
    resend_api_key: str | None = Field(default=None, alias="RESEND_API_KEY")
    resend_api_url: str = Field(default="https://api.resend.com", alias="RESEND_API_URL")
    email_from: str = Field(default="noreply@apexcare.com", alias="EMAIL_FROM")
    clinic_name: str = Field(default="ApexCare Medical Centre", alias="CLINIC_NAME")
    portal_url: str = Field(default="https://apexcare.com/patient-portal", alias="PORTAL_URL")

    # Outbound HTTP
    provider_timeout_seconds: float = Field(default=15.0, alias="PROVIDER_TIMEOUT_SECONDS")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    @property
    def stripe_configured(self) -> bool:
        """Check if card payment credentials are present."""
        return bool(self.stripe_secret_key)

    @property
    def mpesa_configured(self) -> bool:
        """Check if all mobile money credentials are present."""
        return all(
            (
                self.mpesa_consumer_key,
                self.mpesa_consumer_secret,
                self.mpesa_business_shortcode,
                self.mpesa_passkey,
            )
        )

    @property
    def provider_configuration(self) -> dict[str, bool]:
        """Which external providers have credentials, keyed by provider name."""
        return {
            "stripe": self.stripe_configured,
            "mpesa": self.mpesa_configured,
            "resend": bool(self.resend_api_key),
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
