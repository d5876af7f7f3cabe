"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class LendbookConfig(BaseSettings):
    """Lending engine configuration"""

    # Storage configuration
    database_url: str = "memory://"  # memory:// or sqlite:///path/to/lendbook.db

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    payoff_epsilon: Decimal = Decimal("0.005")
    default_interval_unit: str = "months"
    default_interval_value: int = 1

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "LENDBOOK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendbookConfig()


def get_config() -> LendbookConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendbookConfig:
    """Reload configuration from environment"""
    global config
    config = LendbookConfig()
    return config
