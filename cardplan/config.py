"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class PlanEngineConfig(BaseSettings):
    """Payment plan engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="CARDPLAN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "sqlite:///cardplan.db"  # or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Bulk creation
    bulk_max_workers: int = 4
    bulk_max_transactions: int = 200

    # Upcoming payments and reminders
    upcoming_default_days: int = 7
    reminder_days_ahead: int = 3

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = PlanEngineConfig()


def get_config() -> PlanEngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PlanEngineConfig:
    """Reload configuration from environment"""
    global config
    config = PlanEngineConfig()
    return config
