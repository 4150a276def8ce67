"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    api_title: str = "Digital Life Lessons API"
    api_version: str = "0.1.0"
    api_description: str = "Lesson sharing backend with premium entitlement via Stripe"

    # Access tokens (HS256)
    jwt_secret: str = ""  # generate with: openssl rand -hex 32
    access_token_expire_minutes: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "lessons-api"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Payment Provider - Stripe
    stripe_api_key: str = ""  # Stripe secret key (sk_test_... or sk_live_...)
    stripe_webhook_secret: str = ""  # Stripe webhook signing secret (whsec_...)
    stripe_webhook_tolerance_seconds: int = 300

    # Premium plan - one fixed line item
    premium_price_minor: int = 150000  # 1500.00 BDT
    premium_currency: str = "bdt"
    premium_product_name: str = "Digital Life Lessons - Premium Plan"
    premium_product_description: str = (
        "Lifetime access to premium features including unlimited lessons, "
        "ad-free experience, and priority support"
    )

    # Frontend origin used for checkout redirects
    client_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        Stripe credentials are not critical: payment routes answer 503 without them.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.access_token_expire_minutes <= 0:
            errors.append("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")

        if not self.client_url.startswith(("http://", "https://")):
            errors.append(f"CLIENT_URL must be an http(s) origin, got: {self.client_url!r}")

        if self.premium_price_minor <= 0:
            errors.append("PREMIUM_PRICE_MINOR must be positive")

        if not 0.0 <= self.trace_sample_rate <= 1.0:
            errors.append("TRACE_SAMPLE_RATE must be between 0.0 and 1.0")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def stripe_configured(self) -> bool:
        """Both Stripe credentials are present."""
        return bool(self.stripe_api_key and self.stripe_webhook_secret)


# Global settings instance - validates at import time
settings = Settings()
