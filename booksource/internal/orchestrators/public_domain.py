from typing import Any, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import DEFAULT_PROVIDER_TIMEOUT, OrchestratorResult
from booksource.internal.orchestrators.sequential import FreeFirstOrchestrator
from booksource.internal.registry import ProviderRegistry
from booksource.internal.schemas import IsbnQuery, PublicDomainStatus
from booksource.util.cache import ResultCache


class PublicDomainOrchestrator(FreeFirstOrchestrator):
    """
    Public domain status, free providers first.

    When all providers are consulted (``stop_on_first_success=False``) an
    API-verified answer beats a heuristic one (publication date, copyright
    data) regardless of confidence.
    """

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
            Capability.PUBLIC_DOMAIN,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
            stop_on_first_success=stop_on_first_success,
        )

    def select_best(
        self, candidates: list[OrchestratorResult[PublicDomainStatus]]
    ) -> OrchestratorResult[PublicDomainStatus]:
        def rank(result: OrchestratorResult[PublicDomainStatus]) -> tuple[bool, float]:
            if result.payload is None:
                return False, 0.0
            return result.payload.reason == "api-verified", result.confidence

        # max() keeps the first of equal ranks, i.e. the higher-priority provider.
        return max(candidates, key=rank)

    async def check_public_domain(
        self, isbn: str, context: ServiceContext
    ) -> OrchestratorResult[PublicDomainStatus]:
        return await self.execute(IsbnQuery(isbn=isbn), context)
