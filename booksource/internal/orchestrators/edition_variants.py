from typing import Any, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import DEFAULT_PROVIDER_TIMEOUT, OrchestratorResult
from booksource.internal.orchestrators.fan_out import FanOutOrchestrator
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import EditionVariant, IsbnQuery
from booksource.util.cache import ResultCache


def _isbn_key(variant: EditionVariant) -> str:
    return variant.isbn.replace("-", "").upper()


class EditionVariantOrchestrator(FanOutOrchestrator):
    """Other formats and editions of a book, pooled from every provider and unique by ISBN."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
        deduplicate_by_isbn: bool = True,
    ):
        super().__init__(
            registry,
            Capability.EDITION_VARIANTS,
            key=_isbn_key if deduplicate_by_isbn else None,
            exact=True,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )

    async def fetch_edition_variants(
        self, isbn: str, context: ServiceContext
    ) -> OrchestratorResult[list[EditionVariant]]:
        return await self.execute(IsbnQuery(isbn=isbn), context)
