"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from typing import Literal

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

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Play Subscriptions API"
    api_version: str = "0.1.0"
    api_description: str = "Subscription purchase reconciliation for Google Play Billing"

    # Google Play Developer API
    ANDROID_PACKAGE_NAME: str = ""  # e.g., "com.example.subscriptions"
    # Service account JSON (file path or raw JSON) with androidpublisher scope
    PLAY_SERVICE_ACCOUNT: str = ""

    # Firebase Cloud Messaging (push fan-out)
    FCM_PROJECT_ID: str = ""
    FCM_SERVICE_ACCOUNT: str = ""  # Falls back to PLAY_SERVICE_ACCOUNT
    fcm_timeout_seconds: float = 10.0

    # Client authentication - Google ID tokens
    GOOGLE_CLIENT_IDS: str = ""  # Comma-separated list of accepted audiences

    # Grace period / account hold classification.
    # expiry_extension: Google Play v3 extends expiry during grace, past expiry = hold
    # payment_state: past expiry + pending payment = grace, failed payment = hold
    GRACE_PERIOD_POLICY: Literal["payment_state", "expiry_extension"] = "expiry_extension"

    @property
    def valid_google_client_ids(self) -> list[str]:
        """Get list of valid Google client IDs for token validation."""
        ids: list[str] = []
        for cid in self.GOOGLE_CLIENT_IDS.split(","):
            cid = cid.strip()
            if cid and cid not in ids:
                ids.append(cid)
        return ids

    @property
    def fcm_service_account(self) -> str:
        """Service account used for FCM, defaulting to the Play service account."""
        return self.FCM_SERVICE_ACCOUNT or self.PLAY_SERVICE_ACCOUNT

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "playsubs-api"

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
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

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


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
