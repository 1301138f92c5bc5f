from datetime import date
from decimal import Decimal
from typing import Literal, Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Benefit Desk"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    database_url: str = "postgresql+asyncpg://benefits:benefits@db:5432/benefits"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Internal training above this net amount needs a special approver.
    special_approval_threshold: Decimal = Decimal("10000")
    training_min_tenure_days: int = 180
    budget_year_start_month: int = 1
    budget_year_start_day: int = 1
    # Percent of used amount, for the system-computed VAT reconciliation variant.
    reconciliation_vat_rate: Decimal = Decimal("7")
    rollover_interval_seconds: int = 86400

    @model_validator(mode="after")
    def _validate_budget_year_anchor(self) -> Self:
        # The anchor has to exist in every year, so Feb 29 is refused.
        try:
            date(2001, self.budget_year_start_month, self.budget_year_start_day)
        except ValueError:
            msg = (
                f"budget year anchor {self.budget_year_start_month}-{self.budget_year_start_day} "
                "is not a valid date in every year"
            )
            raise ValueError(msg) from None
        return self


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
