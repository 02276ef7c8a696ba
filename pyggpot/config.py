"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class PyggpotConfig(BaseSettings):
    """Pyggpot service configuration"""

    # Database configuration
    database_url: str = "sqlite:///pyggpot.db"  # or sqlite:///:memory:, memory://
    database_timeout: float = 5.0  # Seconds to wait on a locked database
    log_queries: bool = False  # Log every SQL statement at DEBUG

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Randomness
    random_seed: Optional[int] = None  # If None, seeded from the clock at startup

    class Config:
        env_prefix = "PYGGPOT_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PyggpotConfig()


def get_config() -> PyggpotConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PyggpotConfig:
    """Reload configuration from environment"""
    global config
    config = PyggpotConfig()
    return config
