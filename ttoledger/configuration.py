"""Mini README: Centralised configuration for the TTO ledger.

Structure:
    * LedgerSettings - pydantic-settings model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to read ``TTOLEDGER_*`` environment variables (or a
    local ``.env`` file). Engines receive the settings object explicitly so
    tests can construct their own instances without touching the environment.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Runtime configuration for the balance ledger and distribution engine."""

    model_config = SettingsConfigDict(
        env_prefix="TTOLEDGER_",
        env_file=".env",
        case_sensitive=False,
    )

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the JSON API to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Port the JSON API exposes.",
        ge=1,
        le=65535,
    )
    log_level: str = Field("INFO", description="Root log level name.")
    amount_tolerance: Decimal = Field(
        Decimal("0.01"),
        description="Largest accepted gap between an instruction total and the sum of its items.",
        ge=0,
    )
    lock_timeout_seconds: float = Field(
        5.0,
        description="How long an operation waits for a balance or project lock.",
        gt=0,
    )
    concurrency_retry_attempts: int = Field(
        3,
        description="Attempts made by the service when an operation loses a lock race.",
        ge=1,
    )
    block_allocations_on_closed_projects: bool = Field(
        True,
        description="Reject manual allocations against completed or cancelled projects.",
    )
    payment_number_prefix: str = Field(
        "PAY",
        description="Prefix used for human readable payment instruction numbers.",
    )

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        """Store log levels upper-cased so logging accepts them directly."""

        return value.strip().upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> LedgerSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return LedgerSettings()
