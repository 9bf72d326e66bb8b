"""
Configuration management with Pydantic validation.

Loads settings from a YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

from src.market.fees import BASIS_POINTS, DEFAULT_PROTOCOL_FEE_BPS, DEFAULT_SUBJECT_FEE_BPS


class MarketConfig(BaseModel):
    """Fee rates and destinations for the share market."""

    admin: str = "admin"
    protocol_fee_bps: int = Field(default=DEFAULT_PROTOCOL_FEE_BPS, ge=0, le=BASIS_POINTS)
    subject_fee_bps: int = Field(default=DEFAULT_SUBJECT_FEE_BPS, ge=0, le=BASIS_POINTS)
    protocol_fee_destination: str = Field(default="protocol", min_length=1)
    max_trade_quantity: int = Field(
        default=10_000,
        ge=1,
        le=1_000_000,
        description="Largest quantity the operator API will quote",
    )

    @model_validator(mode="after")
    def validate_total_fee(self) -> MarketConfig:
        total = self.protocol_fee_bps + self.subject_fee_bps
        if total > BASIS_POINTS:
            raise ValueError(f"combined fee rate ({total} bps) cannot exceed {BASIS_POINTS} bps")
        return self


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    ledger_path: str = "./data/ledger"
    logs_path: str = "./logs"
    admin_key_file: str | None = Field(
        default=None,
        description="Where a generated admin secret is kept; defaults to <ledger_path>/admin.key",
    )


class MonitoringConfig(BaseModel):
    """Logging, metrics and API configuration."""

    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    metrics_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    trade_log_file: str = "trades.csv"
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    market: MarketConfig = Field(default_factory=MarketConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    # Admin secret supplied by the operator; when empty the key file is used.
    market_admin_key: str = Field(default="", alias="MARKET_ADMIN_KEY")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; environment must win over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def trade_log_path(self) -> Path:
        return Path(self.storage.logs_path) / self.monitoring.trade_log_file

    @property
    def admin_key_path(self) -> Path:
        if self.storage.admin_key_file:
            return Path(self.storage.admin_key_file)
        return Path(self.storage.ledger_path) / "admin.key"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (nested with ``__``, e.g. ``MARKET__PROTOCOL_FEE_BPS``)
    2. Config file values
    3. Default values
    """
    config_data = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    env_path = config_file.parent / ".env"
    return Settings(**config_data, _env_file=env_path)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "market": MarketConfig().model_dump(),
        "storage": StorageConfig().model_dump(),
        "monitoring": MonitoringConfig().model_dump(),
    }
    with open(path, "w") as f:
        yaml.safe_dump(default_config, f, default_flow_style=False, sort_keys=False)
