"""Shared pytest fixtures for the expense-sync test suite."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from expense_sync.cache.entity_cache import EntityCache
from expense_sync.config.settings import Settings
from expense_sync.interfaces.fetcher import IFetcher
from expense_sync.interfaces.object_store import IObjectStore
from expense_sync.models.expense import Expense
from expense_sync.sync.mutation_coordinator import MutationCoordinator
from expense_sync.sync.query_reader import QueryReader


class FakeClock:
    """Manually advanced monotonic clock for freshness tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides: Any) -> Settings:
    """Build a Settings instance with test defaults, ignoring any .env file."""
    defaults: dict[str, Any] = {
        "api_base_url": "http://testserver/api",
        "session_token": "",
        "cache_stale_seconds": 5.0,
        "cache_max_entries": 64,
        "app_env": "test",
        "log_level": "WARNING",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> EntityCache:
    return EntityCache(stale_seconds=5.0, max_fresh_entries=64, timer=clock)


@pytest.fixture
def reader(cache: EntityCache) -> QueryReader:
    return QueryReader(cache)


@pytest.fixture
def coordinator(cache: EntityCache, reader: QueryReader) -> MutationCoordinator:
    return MutationCoordinator(cache, reader)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_fetcher() -> MagicMock:
    """An IFetcher whose HTTP verbs are AsyncMocks."""
    fetcher = MagicMock(spec=IFetcher)
    fetcher.get = AsyncMock()
    fetcher.post = AsyncMock()
    fetcher.patch = AsyncMock()
    fetcher.delete = AsyncMock(return_value=None)
    fetcher.get_provider_name.return_value = "api"
    return fetcher


@pytest.fixture
def mock_object_store() -> MagicMock:
    store = MagicMock(spec=IObjectStore)
    store.put = AsyncMock(return_value=None)
    store.get_provider_name.return_value = "object_store"
    return store


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture
def lunch() -> Expense:
    return Expense(id=1, title="Team lunch", amount=84.5)


@pytest.fixture
def taxi() -> Expense:
    return Expense(id=2, title="Taxi", amount=23.0)
