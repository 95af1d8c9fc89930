import pytest
from pydantic import ValidationError

from booksource.internal.capabilities import Capability
from booksource.internal.orchestrators import CoverFetchOrchestrator
from booksource.internal.schemas import CoverImage

COVER = Capability.COVER_IMAGES

OPEN_LIBRARY_COVER = CoverImage(url="https://covers.openlibrary.org/b/isbn/9780441013593-L.jpg")
ISBNDB_COVER = CoverImage(url="https://images.isbndb.com/covers/35/93/9780441013593.jpg")


@pytest.mark.asyncio
class TestCoverFetch:
    async def test_free_provider_used_before_paid(self, register, registry, context):
        paid = register("isbndb", "paid", [COVER], responses={"fetch_cover": ISBNDB_COVER})
        register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})

        result = await CoverFetchOrchestrator(registry).fetch_cover("9780441013593", context)

        assert result.source == "open-library"
        assert result.payload == OPEN_LIBRARY_COVER
        assert paid.calls == []

    async def test_paid_is_fallback_when_free_misses(self, register, registry, context):
        register("open-library", "free", [COVER])
        register("isbndb", "paid", [COVER], responses={"fetch_cover": ISBNDB_COVER})

        result = await CoverFetchOrchestrator(registry).fetch_cover("9780441013593", context)

        assert result.source == "isbndb"

    async def test_explicit_order_cannot_lift_paid_above_free(self, register, registry, context):
        register("isbndb", "paid", [COVER], responses={"fetch_cover": ISBNDB_COVER})
        register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})

        orchestrator = CoverFetchOrchestrator(registry, priority_order=["isbndb", "open-library"])
        result = await orchestrator.fetch_cover("9780441013593", context)

        assert result.source == "open-library"

    async def test_explicit_order_ranks_within_free_tier(self, register, registry, context):
        register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})
        register("google-books", "free", [COVER], responses={"fetch_cover": CoverImage(url="https://books.google.com/c.jpg")})

        orchestrator = CoverFetchOrchestrator(registry, priority_order=["google-books"])
        result = await orchestrator.fetch_cover("9780441013593", context)

        assert result.source == "google-books"

    async def test_blank_url_rejected(self, register, registry, context):
        register("open-library", "free", [COVER], responses={"fetch_cover": CoverImage(url="   ")})
        register("isbndb", "paid", [COVER], responses={"fetch_cover": ISBNDB_COVER})

        result = await CoverFetchOrchestrator(registry).fetch_cover("9780441013593", context)

        assert result.source == "isbndb"
        assert result.attempts[0].outcome == "invalid"

    async def test_timeout_and_error_fall_through(self, register, registry, context):
        register("slow", "free", [COVER], delay=2.0, responses={"fetch_cover": OPEN_LIBRARY_COVER})
        register("broken", "free", [COVER], errors={"fetch_cover": ConnectionError("reset")})
        register("isbndb", "paid", [COVER], responses={"fetch_cover": ISBNDB_COVER})

        result = await CoverFetchOrchestrator(registry, timeout=0.05).fetch_cover("9780441013593", context)

        assert result.source == "isbndb"
        assert [a.outcome for a in result.attempts] == ["timeout", "error", "success"]

    async def test_isbn_normalized_before_dispatch(self, register, registry, context):
        adapter = register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})

        await CoverFetchOrchestrator(registry).fetch_cover("978-0-441-01359-3", context)

        _, request = adapter.calls[0]
        assert request.isbn == "9780441013593"

    async def test_malformed_isbn_rejected_before_any_call(self, register, registry, context):
        adapter = register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})

        with pytest.raises(ValidationError):
            await CoverFetchOrchestrator(registry).fetch_cover("not-an-isbn", context)
        assert adapter.calls == []

    async def test_nothing_found(self, register, registry, context):
        register("open-library", "free", [COVER])

        result = await CoverFetchOrchestrator(registry).fetch_cover("9780441013593", context)

        assert result.found is False
        assert result.payload is None
        assert result.successful_providers() == []

    async def test_cached_cover_reused(self, register, registry, context, result_cache):
        adapter = register("open-library", "free", [COVER], responses={"fetch_cover": OPEN_LIBRARY_COVER})
        orchestrator = CoverFetchOrchestrator(registry, cache=result_cache)

        await orchestrator.fetch_cover("9780441013593", context)
        cached = await orchestrator.fetch_cover("978-0441013593", context)

        assert cached.cached is True
        assert cached.source == "open-library"
        assert len(adapter.calls) == 1
