from typing import Any, Sequence

from pydantic import BaseModel

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.aggregation import AggregationOrchestrator
from booksource.internal.orchestrators.base import DEFAULT_PROVIDER_TIMEOUT, AggregatedResult
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import BookMetadata, IsbnQuery
from booksource.util.cache import ResultCache


def union_case_insensitive(lists: Sequence[Sequence[str]]) -> list[str]:
    """Order-stable union; the first spelling of each entry is kept."""
    seen: set[str] = set()
    merged: list[str] = []
    for values in lists:
        for value in values:
            folded = value.strip().casefold()
            if not folded or folded in seen:
                continue
            seen.add(folded)
            merged.append(value.strip())
    return merged


class MetadataEnrichmentOrchestrator(AggregationOrchestrator):
    """Bibliographic record merged from every metadata provider. Subjects are pooled."""

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
            Capability.METADATA_ENRICHMENT,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )

    def merge(self, records: list[tuple[str, BaseModel]]) -> tuple[dict[str, Any], dict[str, str]]:
        values, contributions = super().merge(records)
        subjects = union_case_insensitive([getattr(record, "subjects", []) for _, record in records])
        if subjects:
            values["subjects"] = subjects
        return values, contributions

    async def enrich_metadata(self, isbn: str, context: ServiceContext) -> AggregatedResult[BookMetadata]:
        return await self.execute(IsbnQuery(isbn=isbn), context)
