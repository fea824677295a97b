"""Mini README: Centralised configuration models and helpers for the shift ledger.

Structure:
    * ShiftLedgerSettings - Pydantic model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to pick the storage backend, the shift boundary
    hour, the auto-close cadence and the service port. Values come from
    ``SHIFTLEDGER_*`` environment variables or a local ``.env`` file and are
    validated once per process.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class ShiftLedgerSettings(BaseSettings):
    """Runtime configuration for the shift ledger engine."""

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    log_level: str = Field("INFO", description="Root logging level name.")
    data_directory: Path = Field(
        Path("data"),
        description="Directory holding the local SQLite database and exports.",
    )
    database_name: str = Field(
        "shiftledger.db",
        description="File name of the local ledger database inside the data directory.",
    )
    storage_backend: str = Field(
        "local",
        description="Registered store used for ledgers: 'local' (SQLite) or 'remote' (HTTP API).",
    )
    api_base_url: str = Field(
        "http://localhost:3000/api/v1",
        description="Base URL of the remote driver API.",
    )
    api_token: Optional[str] = Field(
        None,
        description="Bearer token sent to the remote driver API.",
    )
    api_timeout_seconds: float = Field(10.0, gt=0, description="HTTP timeout for API calls.")
    timezone: Optional[str] = Field(
        None,
        description=(
            "IANA timezone used to place shift boundaries. Leave unset to use"
            " the machine's local timezone."
        ),
    )
    shift_start_hour: int = Field(
        4,
        ge=0,
        le=23,
        description="Local hour at which a shift day begins and the previous one ends.",
    )
    auto_close_interval_seconds: float = Field(
        60.0,
        gt=0,
        description="Polling cadence of the auto-close monitor.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the JSON API to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Default port the JSON API exposes.",
        ge=1,
        le=65535,
    )

    class Config:
        env_prefix = "SHIFTLEDGER_"
        env_file = ".env"
        case_sensitive = False

    @validator("data_directory", pre=True)
    def _expand_path(cls, value: Optional[str | Path]) -> Path:
        """Ensure configured paths expand user directories and exist."""

        path = Path(value).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @validator("storage_backend")
    def _normalise_backend(cls, value: str) -> str:
        return value.strip().lower()

    @validator("timezone")
    def _check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        try:
            ZoneInfo(value.strip())
        except (ZoneInfoNotFoundError, ValueError) as error:
            raise ValueError(f"Unknown timezone: {value}") from error
        return value.strip()

    @property
    def database_path(self) -> Path:
        return self.data_directory / self.database_name

    def resolve_timezone(self) -> tzinfo:
        """Return the configured zone, falling back to the machine's local one."""

        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo


@lru_cache()
def get_settings() -> ShiftLedgerSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return ShiftLedgerSettings()
