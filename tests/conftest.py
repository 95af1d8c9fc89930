"""
Pytest configuration and fixtures for the booksource test suite.
"""
from datetime import UTC, datetime
from typing import Any, AsyncGenerator, Callable, Generator, Iterable

import pytest
from aiohttp import ClientSession
from aioresponses import aioresponses
from sqlmodel import SQLModel, create_engine

from booksource.internal.capabilities import Capability, ProviderType
from booksource.internal.context import ServiceContext, create_service_context
from booksource.internal.quota import InMemoryCounterStore, QuotaManager
from booksource.internal.registry import ProviderRegistry
from booksource.util.cache import ResultCache
from booksource.util.db import init_db
from fakes import FakeProvider, FixedClock, descriptor


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry(availability_timeout=0.5)


@pytest.fixture
def register(registry) -> Callable[..., FakeProvider]:
    """Register a FakeProvider (or a given adapter) and return the adapter."""

    def _register(
        name: str,
        provider_type: ProviderType | str,
        capabilities: Iterable[Capability],
        adapter: FakeProvider | None = None,
        **kwargs: Any,
    ) -> FakeProvider:
        adapter = adapter if adapter is not None else FakeProvider(**kwargs)
        registry.register(descriptor(name, provider_type, *capabilities), adapter)
        return adapter

    return _register


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 14, 12, 0, tzinfo=UTC))


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def quota_manager(counter_store, clock) -> QuotaManager:
    return QuotaManager(
        counter_store,
        {"isbndb": 100, "gemini": 100, "xai": 100},
        soft_ceiling=0.70,
        hard_ceiling=0.85,
        clock=clock,
    )


@pytest.fixture
def context(quota_manager) -> ServiceContext:
    return create_service_context(env={"ISBNDB_API_KEY": "test-key"}, quota_manager=quota_manager)


@pytest.fixture
def result_cache() -> ResultCache[Any]:
    return ResultCache(ttl=60)


# Database fixtures
@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


# Async HTTP mocking fixtures
@pytest.fixture(scope="function")
async def mock_client_session() -> AsyncGenerator[ClientSession, None]:
    """Provide a real ClientSession with aioresponses mocking for HTTP calls."""
    with aioresponses() as mocked:
        async with ClientSession() as session:
            # Attach mocked responses to session for easy access in tests
            session._mocked = mocked  # pyright: ignore[reportAttributeAccessIssue]
            yield session


@pytest.fixture(scope="function")
def aioresponses_mocker() -> Generator[aioresponses, None, None]:
    """Provide aioresponses context manager for manual HTTP mocking."""
    with aioresponses() as mocked:
        yield mocked
