"""Shared fixtures for the medconsent tests."""

import pytest

from medconsent.storage import InMemoryExchangeRepository, SQLExchangeRepository


@pytest.fixture(params=["memory", "sql"])
def exchange_storage(request, tmp_path):
    """Each storage backend in turn; the SQL one runs on a SQLite file"""
    if request.param == "sql":
        return SQLExchangeRepository(f"sqlite:///{tmp_path / 'exchange.db'}")
    return InMemoryExchangeRepository()
