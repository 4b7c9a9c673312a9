"""
Configuration management for medconsent
Storage backend, credential hashing and session token settings
"""

from enum import Enum
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field


class StorageBackend(str, Enum):
    """Supported persistence backends"""
    MEMORY = "memory"
    SQL = "sql"


class ExchangeConfig(BaseSettings):
    """Record exchange configuration settings"""

    # Persistence
    storage_backend: StorageBackend = Field(default=StorageBackend.SQL)
    database_url: str = Field(default="sqlite:///medconsent.db")

    # Credentials
    password_hash_rounds: int = Field(default=12, description="bcrypt cost factor")
    subject_key_max_attempts: int = Field(
        default=20,
        description="Disambiguator retries before subject key issuance gives up"
    )

    # Session tokens
    jwt_secret: str = Field(default="dev-only-secret-change-before-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expiry_minutes: int = Field(default=60)

    # HTTP
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Environment-specific overrides
    debug_mode: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "MEDCONSENT_", "case_sensitive": False}


# Global configuration instance
exchange_config = ExchangeConfig()


def get_exchange_config() -> ExchangeConfig:
    """Get the global configuration instance"""
    return exchange_config


def update_exchange_config(**kwargs) -> ExchangeConfig:
    """Update configuration with new values"""
    global exchange_config
    for key, value in kwargs.items():
        if hasattr(exchange_config, key):
            setattr(exchange_config, key, value)
    return exchange_config
