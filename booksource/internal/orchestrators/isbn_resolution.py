"""
Title/author to ISBN resolution.

Paid catalogue lookups are tried first and free providers are the
fallback. Every candidate is checked against the requested title and author
before it is accepted.
"""
from typing import Any, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import OrchestratorResult
from booksource.internal.orchestrators.sequential import PaidFirstOrchestrator
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import ResolvedISBN, TitleAuthorQuery
from booksource.util.cache import ResultCache
from booksource.util.similarity import RESOLUTION_THRESHOLD, record_similarity

ISBN_RESOLUTION_TIMEOUT = 15.0


class ISBNResolutionOrchestrator(PaidFirstOrchestrator):
    threshold: float

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        timeout: float = ISBN_RESOLUTION_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
        threshold: float = RESOLUTION_THRESHOLD,
    ):
        super().__init__(
            registry,
            Capability.ISBN_RESOLUTION,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
        )
        self.threshold = threshold

    def _score(self, value: ResolvedISBN, request: TitleAuthorQuery) -> float:
        return record_similarity(request.title, request.author, value.title, value.authors)

    def validate(self, value: ResolvedISBN, request: TitleAuthorQuery, context: ServiceContext) -> bool:
        if not value.isbn:
            return False
        if not value.title:
            context.logger.info("Resolved record has no title, rejecting", isbn=value.isbn)
            return False

        score = self._score(value, request)
        if score < self.threshold:
            context.logger.info(
                "Resolved record does not match query",
                query_title=request.title,
                query_author=request.author,
                returned_title=value.title,
                returned_authors=value.authors,
                similarity=round(score, 3),
                threshold=self.threshold,
            )
            return False
        return True

    def confidence_for(self, value: ResolvedISBN, request: TitleAuthorQuery) -> float:
        return round(min(value.confidence, self._score(value, request) * 100), 1)

    async def resolve_isbn(
        self, title: str, author: str | None, context: ServiceContext
    ) -> OrchestratorResult[ResolvedISBN]:
        return await self.execute(TitleAuthorQuery(title=title, author=author or ""), context)
