"""Centralized application configuration via Pydantic Settings.

Loads all env vars into a typed Settings instance, including the tuning knobs
handed to the ledger merge engine.
"""

from datetime import timedelta

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_ANON_KEY: str = Field(..., description="Supabase anon/public key")

    # CORS
    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated allowed origins for CORS",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Python log level")
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    # App
    APP_VERSION: str = Field(default="0.1.0", description="Application version")

    # Ledger engine
    LEDGER_TABLE: str = Field(default="super_statement", description="Row store table for ledgers")
    LEDGER_BALANCE_EPSILON: float = Field(
        default=0.01, ge=0, description="Balance continuity tolerance in currency units"
    )
    LEDGER_GAP_TOLERANCE_DAYS: int = Field(
        default=1, ge=0, description="Days between statements still treated as continuous"
    )
    LEDGER_IDENTITY_WORKERS: int = Field(
        default=0, ge=0, description="Threads for fingerprinting a batch (0 = inline)"
    )
    LEDGER_DISCREPANCY_ALERT: float = Field(
        default=1000.0,
        ge=0,
        description="Balance repairs above this amount are logged at error level",
    )
    LEDGER_MAX_MERGE_ATTEMPTS: int = Field(
        default=3, ge=1, description="Fetch-merge-save attempts before surfacing a conflict"
    )

    @property
    def allowed_origins(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL

    @property
    def gap_tolerance(self) -> timedelta:
        return timedelta(days=self.LEDGER_GAP_TOLERANCE_DAYS)

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Factory for Settings — allows test override."""
    return Settings()


# Module-level singleton (lazy: only created when first accessed)
try:
    settings = get_settings()
except Exception:
    # During testing, env vars may not be set — defer to test fixtures
    settings = None  # type: ignore[assignment]
