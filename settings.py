"""
Engine configuration.

Uses pydantic-settings so tolerances and logging can be tuned from the
environment (prefix LEDGER_) or a .env file without touching code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings consumed by the HTTP adapter and logging setup."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    conservation_tolerance: float = Field(
        default=1e-6,
        gt=0,
        description="Largest zero-sum drift (base units) left uncorrected"
    )
    correction_warning_ratio: float = Field(
        default=1e-9,
        gt=0,
        description="Correction / volume ratio above which a warning is logged"
    )
    max_settlement_iterations: int = Field(
        default=10000,
        ge=1,
        description="Hard cap on settlement planner iterations"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    log_json: bool = Field(
        default=False,
        description="Render log lines as JSON instead of console text"
    )


@lru_cache()
def get_settings() -> EngineSettings:
    """
    Get engine settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return EngineSettings()
