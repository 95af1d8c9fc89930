from typing import Any, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import OrchestratorResult
from booksource.internal.orchestrators.sequential import FreeFirstOrchestrator
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import CoverImage, IsbnQuery
from booksource.util.cache import ResultCache

COVER_FETCH_TIMEOUT = 10.0


class CoverFetchOrchestrator(FreeFirstOrchestrator):
    """Cover lookup, always spending free providers before paid ones."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = COVER_FETCH_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
    ):
        super().__init__(
            registry,
            Capability.COVER_IMAGES,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )

    def validate(self, value: CoverImage, request: IsbnQuery, context: ServiceContext) -> bool:
        return bool(value.url and value.url.strip())

    async def fetch_cover(self, isbn: str, context: ServiceContext) -> OrchestratorResult[CoverImage]:
        return await self.execute(IsbnQuery(isbn=isbn), context)
