"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
All validation limits live here so the validator, the coordinator and the
front end stay in sync.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class BankConfig(BaseSettings):
    """Basic bank configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BASICBANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Name rules
    name_min_length: int = 2
    name_max_length: int = 50

    # PIN rules
    pin_length: int = 4

    # Amount rules
    amount_max: Decimal = Decimal("10000000")  # 1 crore per transaction
    amount_decimals: int = 2

    # Large transaction threshold for confirmation
    large_transaction_threshold: Decimal = Decimal("10000")

    # Simulated settlement (milliseconds)
    settlement_delay_ms: int = 600
    transfer_settlement_delay_ms: int = 800

    # Presentation
    statement_page_size: int = 20
    account_label: str = "Main Account"

    # Storage configuration
    storage_backend: str = "json"  # json, sqlite or memory
    storage_path: str = "basic_bank.json"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
