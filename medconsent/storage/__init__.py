"""
Persistence for medconsent
Pluggable repositories: in-memory for tests, SQL for durable deployments
"""

from typing import Optional

from ..config import ExchangeConfig, StorageBackend, get_exchange_config
from .base import AccessSnapshot, ExchangeRepository
from .memory import InMemoryExchangeRepository
from .sql import SQLExchangeRepository


def create_repository(config: Optional[ExchangeConfig] = None) -> ExchangeRepository:
    """Build the repository selected by configuration"""
    config = config or get_exchange_config()
    if config.storage_backend == StorageBackend.MEMORY:
        return InMemoryExchangeRepository()
    return SQLExchangeRepository(config.database_url)


__all__ = [
    "AccessSnapshot",
    "ExchangeRepository",
    "InMemoryExchangeRepository",
    "SQLExchangeRepository",
    "create_repository",
]
