"""
Receipt Engine Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Invalid config is rejected at import time.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("json", "console")


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Receipt engine settings loaded from environment variables."""

    # Temporal reconciliation
    temporal_tolerance_ms: int = 1000  # Sub-second rounding in the source format

    # Cross-field rules
    sandbox_application_version: str = "1.0"  # Sandbox receipts always report 1.0
    expected_bundle_id: str | None = None  # Optional: flag receipts for other apps

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    service_name: str = "receiptguard"
    service_version: str = "0.1.0"
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_prefix="RECEIPTGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate configuration when settings are built.

        A negative tolerance would make every timestamp a mismatch, so the
        engine refuses to start with one.
        """
        errors: list[str] = []

        if self.temporal_tolerance_ms < 0:
            errors.append(
                f"TEMPORAL_TOLERANCE_MS must be >= 0, got: {self.temporal_tolerance_ms}"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {VALID_LOG_LEVELS}, got: {self.log_level}")

        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"LOG_FORMAT must be one of {VALID_LOG_FORMATS}, got: {self.log_format}"
            )

        if self.expected_bundle_id is not None and not self.expected_bundle_id.strip():
            errors.append("EXPECTED_BUNDLE_ID must not be blank when set")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - RECEIPT ENGINE CANNOT START",
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
    """Get receipt engine settings instance."""
    return settings
