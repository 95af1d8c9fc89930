"""
Tests for wiring the orchestration layer together from settings.
"""
import pytest

from booksource.internal.capabilities import Capability
from booksource.internal.env_settings import OrchestrationSettings, QuotaSettings, Settings
from booksource.internal.orchestrators import (
    CoverFetchOrchestrator,
    FanOutOrchestrator,
    ISBNResolutionOrchestrator,
    SequentialFallbackOrchestrator,
)
from booksource.internal.quota import InMemoryCounterStore, Priority, SQLCounterStore
from booksource.internal.schemas import Award, CoverImage, IsbnQuery, ResolvedISBN
from booksource.internal.service import create_orchestration_service
from booksource.util.exceptions import DuplicateProviderError
from fakes import FakeProvider, MeteredFakeProvider, descriptor

ISBN = Capability.ISBN_RESOLUTION
DUNE = ResolvedISBN(isbn="9780441013593", title="Dune", authors=["Frank Herbert"])


def make_settings(**quota) -> Settings:
    return Settings(
        quota=QuotaSettings(daily_limits={"isbndb": 10}, **quota),
        orchestration=OrchestrationSettings(cover_fetch_timeout=3.0, result_cache_ttl=120),
    )


class TestCreateOrchestrationService:
    def test_every_capability_has_an_orchestrator(self):
        service = create_orchestration_service(make_settings(), [])

        assert set(service.orchestrators) == set(Capability)
        assert isinstance(service.orchestrator_for(ISBN), ISBNResolutionOrchestrator)
        assert isinstance(service.orchestrator_for(Capability.COVER_IMAGES), CoverFetchOrchestrator)
        assert isinstance(service.orchestrator_for(Capability.SERIES_INFO), SequentialFallbackOrchestrator)
        assert isinstance(service.orchestrator_for(Capability.AWARDS), FanOutOrchestrator)

    def test_settings_applied(self):
        service = create_orchestration_service(make_settings(), [])

        assert service.cover_fetch.timeout == 3.0
        assert service.isbn_resolution.threshold == 0.70
        assert service.book_generation.priority_order == ["gemini", "xai"]
        assert service.result_cache._ttl == 120
        assert service.quota_manager.limit_for("isbndb") == 10

    def test_generated_books_are_not_cached(self):
        service = create_orchestration_service(make_settings(), [])

        assert service.book_generation.cache is None
        assert service.cover_fetch.cache is service.result_cache

    def test_providers_registered(self):
        providers = [
            (descriptor("isbndb", "paid", ISBN, Capability.COVER_IMAGES), FakeProvider()),
            (descriptor("open-library", "free", Capability.COVER_IMAGES), FakeProvider()),
        ]

        service = create_orchestration_service(make_settings(), providers)

        assert len(service.registry) == 2
        assert [p.name for p in service.registry.get_by_capability(Capability.COVER_IMAGES)] == [
            "isbndb",
            "open-library",
        ]

    def test_duplicate_provider_fails_startup(self):
        providers = [
            (descriptor("isbndb", "paid", ISBN), FakeProvider()),
            (descriptor("isbndb", "paid", ISBN), FakeProvider()),
        ]

        with pytest.raises(DuplicateProviderError):
            create_orchestration_service(make_settings(), providers)

    def test_memory_backend(self):
        service = create_orchestration_service(make_settings(backend="memory"), [])
        assert isinstance(service.quota_manager._store, InMemoryCounterStore)

    def test_sql_backend_uses_given_engine(self, db_engine):
        service = create_orchestration_service(make_settings(backend="sql"), [], engine=db_engine)
        assert isinstance(service.quota_manager._store, SQLCounterStore)

    def test_counter_store_override(self):
        store = InMemoryCounterStore()
        service = create_orchestration_service(make_settings(backend="sql"), [], counter_store=store)
        assert service.quota_manager._store is store

    def test_context_carries_quota_manager_and_priority(self):
        service = create_orchestration_service(make_settings(), [])

        context = service.context(env={}, priority="high", cache_policy="disabled", timeout=5)

        assert context.quota_manager is service.quota_manager
        assert context.priority == Priority.HIGH
        assert context.timeout == 5


@pytest.mark.asyncio
class TestServiceEndToEnd:
    async def test_paid_resolver_falls_back_once_soft_ceiling_reached(self):
        paid = MeteredFakeProvider("isbndb", responses={"resolve_isbn": DUNE})
        free = FakeProvider(responses={"resolve_isbn": DUNE.model_copy(update={"isbn": "9780441172719"})})
        service = create_orchestration_service(
            make_settings(),
            [(descriptor("isbndb", "paid", ISBN), paid), (descriptor("open-library", "free", ISBN), free)],
        )
        context = service.context(env={}, cache_policy="disabled")

        sources = [
            (await service.isbn_resolution.resolve_isbn("Dune", "Frank Herbert", context)).source
            for _ in range(8)
        ]

        # Limit 10, soft ceiling 0.70: seven low-priority calls fit.
        assert sources == ["isbndb"] * 7 + ["open-library"]
        assert (await service.quota_manager.status("isbndb")).used == 7

    async def test_result_cache_shared_across_contexts(self):
        adapter = FakeProvider(responses={"fetch_cover": CoverImage(url="https://covers.example/dune.jpg")})
        service = create_orchestration_service(
            make_settings(), [(descriptor("open-library", "free", Capability.COVER_IMAGES), adapter)]
        )

        await service.cover_fetch.fetch_cover("9780441013593", service.context(env={}))
        second = await service.cover_fetch.fetch_cover("9780441013593", service.context(env={}))

        assert second.cached is True
        assert len(adapter.calls) == 1

    async def test_awards_deduplicated_by_name_year_category(self):
        hugo = Award(name="Hugo Award", year=1966, category="Best Novel")
        service = create_orchestration_service(
            make_settings(),
            [
                (descriptor("wikidata", "free", Capability.AWARDS), FakeProvider(responses={"fetch_awards": [hugo]})),
                (
                    descriptor("open-library", "free", Capability.AWARDS),
                    FakeProvider(responses={"fetch_awards": [Award(name="hugo award", year=1966, category="best novel")]}),
                ),
            ],
        )

        result = await service.awards.execute(IsbnQuery(isbn="9780441013593"), service.context(env={}))

        assert result.payload == [hugo]
