"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables (IAP_ prefix)."""

    service_name: str = "iap-bridge"
    service_version: str = "0.1.0"

    # Bundled product identifier list (.plist or .json array of strings)
    product_ids_path: Path = _PACKAGE_DIR / "data" / "IAP_ProductIDs.plist"

    # Local save-game file
    game_data_path: Path = Path("userdata") / "game_data.json"

    # Rewards granted by the keyword rule
    extra_lives_per_purchase: int = 3
    super_powers_per_purchase: int = 2

    # Recently handled transaction ids kept for redelivery detection
    handled_transaction_cache_size: int = 10_000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True

    model_config = SettingsConfigDict(
        env_prefix="IAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        Reward amounts and logging options are checked here so a bad
        environment never reaches the purchase flow.
        """
        errors: list[str] = []

        if self.extra_lives_per_purchase <= 0:
            errors.append(
                f"EXTRA_LIVES_PER_PURCHASE must be positive, got: {self.extra_lives_per_purchase}"
            )
        if self.super_powers_per_purchase <= 0:
            errors.append(
                f"SUPER_POWERS_PER_PURCHASE must be positive, got: {self.super_powers_per_purchase}"
            )
        if self.handled_transaction_cache_size <= 0:
            errors.append(
                "HANDLED_TRANSACTION_CACHE_SIZE must be positive, "
                f"got: {self.handled_transaction_cache_size}"
            )
        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")
        if self.product_ids_path.suffix.lower() not in (".plist", ".json"):
            errors.append(
                f"PRODUCT_IDS_PATH must point to a .plist or .json file, got: {self.product_ids_path}"
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
