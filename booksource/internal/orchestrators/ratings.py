from typing import Any, Iterable, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import DEFAULT_PROVIDER_TIMEOUT, OrchestratorResult
from booksource.internal.orchestrators.sequential import PaidFirstOrchestrator
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import IsbnQuery, Ratings
from booksource.util.cache import ResultCache

MAX_RATING = 5.0


class RatingsOrchestrator(PaidFirstOrchestrator):
    """Average rating and rating count, paid catalogues first."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
        stop_on_first_success: bool = True,
    ):
        super().__init__(
            registry,
            Capability.RATINGS,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
            stop_on_first_success=stop_on_first_success,
        )

    def validate(self, value: Ratings, request: IsbnQuery, context: ServiceContext) -> bool:
        if not 0 <= value.average_rating <= MAX_RATING or value.ratings_count < 0:
            context.logger.info(
                "Ratings out of range",
                isbn=request.isbn,
                average_rating=value.average_rating,
                ratings_count=value.ratings_count,
            )
            return False
        return True

    async def fetch_ratings(self, isbn: str, context: ServiceContext) -> OrchestratorResult[Ratings]:
        return await self.execute(IsbnQuery(isbn=isbn), context)

    async def fetch_ratings_batch(
        self, isbns: Iterable[str], context: ServiceContext
    ) -> dict[str, Ratings]:
        """Ratings for several ISBNs. Only ISBNs with a result appear in the mapping."""
        results = await self.execute_many([IsbnQuery(isbn=isbn) for isbn in isbns], context)
        return {isbn: result.payload for isbn, result in results.items() if result.payload is not None}
