"""
AI book generation.

Every generator is asked at once; their suggestions are pooled and books
whose normalized titles are similar enough are collapsed to the first one
seen, in generator priority order.
"""
from typing import Any, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import OrchestratorResult
from booksource.internal.orchestrators.fan_out import FanOutOrchestrator
from booksource.internal.registry import ProviderRegistry, RegisteredProvider
from booksource.internal.schemas import BookGenerationRequest, GeneratedBook
from booksource.util.cache import ResultCache
from booksource.util.similarity import DEDUPLICATION_THRESHOLD

BOOK_GENERATION_TIMEOUT = 60.0


def _title_key(book: GeneratedBook) -> str:
    return book.title


class BookGenerationOrchestrator(FanOutOrchestrator):
    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = BOOK_GENERATION_TIMEOUT,
        threshold: float = DEDUPLICATION_THRESHOLD,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
        concurrent: bool = True,
    ):
        super().__init__(
            registry,
            Capability.BOOK_GENERATION,
            key=_title_key,
            threshold=threshold,
            concurrent=concurrent,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )

    def annotate(self, item: GeneratedBook, provider: RegisteredProvider) -> GeneratedBook:
        if item.source:
            return item
        return item.model_copy(update={"source": provider.name})

    async def generate_books(
        self, prompt: str, count: int, context: ServiceContext
    ) -> OrchestratorResult[list[GeneratedBook]]:
        return await self.execute(BookGenerationRequest(prompt=prompt, count=count), context)
