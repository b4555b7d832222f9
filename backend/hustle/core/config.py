# backend/hustle/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "environment"),
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./hustle_village.db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="SQLAlchemy URL for the record store",
    )
    sql_echo: bool = Field(default=False, validation_alias=AliasChoices("SQL_ECHO", "sql_echo"))

    # Identity provider (JWTs are issued upstream, we only verify them)
    jwt_secret: SecretStr = Field(
        default=SecretStr("dev-only-jwt-secret-change-me"),
        validation_alias=AliasChoices("JWT_SECRET", "jwt_secret"),
        description="Shared secret used to verify bearer tokens",
    )
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("JWT_AUDIENCE", "jwt_audience"),
    )

    # Payment gateway (Paystack)
    paystack_secret_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("PAYSTACK_SECRET_KEY", "paystack_secret_key"),
    )
    paystack_base_url: str = Field(
        default="https://api.paystack.co",
        validation_alias=AliasChoices("PAYSTACK_BASE_URL", "paystack_base_url"),
    )
    paystack_timeout_seconds: float = 10.0
    use_fake_payment_gateway: bool = Field(
        default=False,
        validation_alias=AliasChoices("USE_FAKE_PAYMENT_GATEWAY", "use_fake_payment_gateway"),
        description="Route gateway calls to the in-memory fake (non-production only)",
    )
    payment_currency: str = Field(
        default="GHS",
        validation_alias=AliasChoices("PAYMENT_CURRENCY", "payment_currency"),
    )
    minimum_payment_amount: int = 1
    frontend_url: str = Field(
        default="https://hustlevillage.app",
        validation_alias=AliasChoices("FRONTEND_URL", "frontend_url"),
    )
    payment_callback_path: str = "/payment/callback"

    # Invoices
    invoice_prefix: str = "HV"

    # Email (Resend)
    resend_api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("RESEND_API_KEY", "resend_api_key"),
    )
    from_email: str = Field(
        default=f"{BRAND_NAME} <noreply@hustlevillage.app>",
        validation_alias=AliasChoices("FROM_EMAIL", "from_email"),
    )

    # Background work
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "redis_url"),
    )
    celery_broker_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CELERY_BROKER_URL", "celery_broker_url"),
    )
    outbox_max_attempts: int = 5
    outbox_dispatch_interval_seconds: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("payment_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        cleaned = (value or "").strip().upper()
        if len(cleaned) != 3:
            raise ValueError("payment_currency must be a 3-letter ISO code")
        return cleaned

    @field_validator("frontend_url", "paystack_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def payment_callback_url(self) -> str:
        """Absolute URL the gateway redirects buyers to after checkout."""
        return f"{self.frontend_url}{self.payment_callback_path}"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
