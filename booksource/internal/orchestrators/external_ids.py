from typing import Any, Sequence

from pydantic import BaseModel

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.aggregation import AggregationOrchestrator
from booksource.internal.orchestrators.base import DEFAULT_PROVIDER_TIMEOUT, AggregatedResult
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import ExternalIds, IsbnQuery
from booksource.util.cache import ResultCache


class ExternalIdOrchestrator(AggregationOrchestrator):
    """
    Crosswalk of identifiers (ASIN, Goodreads, Wikidata, ...) merged from
    every provider. Confidence is the mean confidence the providers reported.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
    ):
        super().__init__(
            registry,
            Capability.ENHANCED_EXTERNAL_IDS,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )

    def confidence_for(
        self, values: dict[str, Any], contributions: dict[str, str], records: list[tuple[str, BaseModel]]
    ) -> float:
        scores = [float(getattr(record, "confidence", 0.0)) for _, record in records]
        return round(sum(scores) / len(scores), 1) if scores else 0.0

    async def fetch_external_ids(self, isbn: str, context: ServiceContext) -> AggregatedResult[ExternalIds]:
        return await self.execute(IsbnQuery(isbn=isbn), context)
