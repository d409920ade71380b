"""Configuration management for GroupCalc."""

import math
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Stored settings (see GroupService) take precedence over these values.
    """

    model_config = SettingsConfigDict(
        env_prefix="GROUP_CALC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Currency all balances and settlements are reported in
    base_currency: str = "AZN"

    # Rate overrides (code -> value of one unit in AZN), JSON in the environment
    exchange_rates: dict[str, float] = {}

    # Database path
    database_path: Path = Path.home() / ".group_calc" / "group_calc.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @field_validator("base_currency")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("exchange_rates")
    @classmethod
    def rates_positive(cls, value: dict[str, float]) -> dict[str, float]:
        rates = {code.strip().upper(): rate for code, rate in value.items()}
        bad = [
            code
            for code, rate in rates.items()
            if not math.isfinite(rate) or rate <= 0
        ]
        if bad:
            raise ValueError(
                f"Exchange rates must be positive numbers: {', '.join(bad)}"
            )
        return rates


def load_settings(**overrides) -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings(**overrides)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check the GROUP_CALC_* environment "
            f"variables and your .env file.\n"
            f"Error: {e}"
        ) from e
