import asyncio
from typing import Any, Callable, Sequence

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import (
    DEFAULT_PROVIDER_TIMEOUT,
    BaseOrchestrator,
    CallBudget,
    OrchestratorResult,
    ProviderAttempt,
)
from booksource.internal.registry import ProviderRegistry, RegisteredProvider
from booksource.util.cache import ResultCache
from booksource.util.similarity import DEDUPLICATION_THRESHOLD, deduplicate


class FanOutOrchestrator(BaseOrchestrator[OrchestratorResult[list[Any]]]):
    """
    Call every available provider at once and merge their lists.

    Each provider runs under its own timeout, so a slow one drops out
    without holding up or cancelling the rest. Once all have settled the
    lists are concatenated in provider priority order and deduplicated,
    keeping the first item of each cluster.

    Args:
        key: Extracts the deduplication key from an item. Without a key no
            deduplication happens.
        threshold: Similarity at which two keys are the same item.
        exact: Compare keys for equality instead of fuzzy similarity.
        concurrent: When False, providers are tried one after another and
            the first non-empty list wins.
    """

    key: Callable[[Any], str | None] | None
    threshold: float
    exact: bool
    concurrent: bool

    def __init__(
        self,
        registry: ProviderRegistry,
        capability: Capability,
        *,
        key: Callable[[Any], str | None] | None = None,
        threshold: float = DEDUPLICATION_THRESHOLD,
        exact: bool = False,
        concurrent: bool = True,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        priority_order: Sequence[str] | None = None,
        cache: ResultCache[Any] | None = None,
        name: str | None = None,
    ):
        super().__init__(
            registry,
            capability,
            timeout=timeout,
            priority_order=priority_order,
            cache=cache,
            name=name,
        )
        self.key = key
        self.threshold = threshold
        self.exact = exact
        self.concurrent = concurrent

    def annotate(self, item: Any, provider: RegisteredProvider) -> Any:
        """Hook to stamp an item with the provider that returned it."""
        return item

    def confidence_for(self, items: list[Any]) -> float:
        scores = [c for c in (getattr(item, "confidence", None) for item in items) if c is not None]
        if not scores:
            return 100.0 if items else 0.0
        return round(sum(scores) / len(scores), 1)

    def dedup(self, items: list[Any], context: ServiceContext) -> list[Any]:
        if self.key is None:
            return items

        if self.exact:
            seen: set[str] = set()
            kept = []
            for item in items:
                item_key = self.key(item)
                if item_key is not None and item_key in seen:
                    continue
                if item_key is not None:
                    seen.add(item_key)
                kept.append(item)
            return kept

        def log_duplicate(item: Any, kept_item: Any, score: float) -> None:
            context.logger.debug(
                "Dropped duplicate item",
                item=self.key(item) if self.key else None,
                duplicate_of=self.key(kept_item) if self.key else None,
                similarity=round(score, 3),
            )

        return deduplicate(items, self.key, self.threshold, on_duplicate=log_duplicate)

    def _empty(self, attempts: Sequence[ProviderAttempt]) -> OrchestratorResult[list[Any]]:
        return OrchestratorResult.empty(attempts, payload=[])

    async def _dispatch(
        self,
        request: Any,
        context: ServiceContext,
        providers: list[RegisteredProvider],
        budget: CallBudget,
        attempts: list[ProviderAttempt],
    ) -> OrchestratorResult[list[Any]]:
        if budget.spent():
            self._skip_remaining(providers, attempts, context)
            return self._empty(attempts)

        per_provider: list[tuple[RegisteredProvider, list[Any]]] = []
        if self.concurrent:
            outcomes = await asyncio.gather(*(self._call(p, request, context, budget) for p in providers))
            for provider, (value, outcome, latency) in zip(providers, outcomes):
                attempts.append(ProviderAttempt(provider=provider.name, outcome=outcome, latency_ms=latency))
                per_provider.append((provider, value or []))
        else:
            for index, provider in enumerate(providers):
                if budget.spent():
                    self._skip_remaining(providers[index:], attempts, context)
                    break
                value, outcome, latency = await self._call(provider, request, context, budget)
                attempts.append(ProviderAttempt(provider=provider.name, outcome=outcome, latency_ms=latency))
                if value:
                    per_provider.append((provider, value))
                    break

        tagged: list[tuple[str, Any]] = [
            (provider.name, self.annotate(item, provider)) for provider, items in per_provider for item in items
        ]
        if not tagged:
            return self._empty(attempts)

        kept = self.dedup([item for _, item in tagged], context)
        kept_ids = {id(item) for item in kept}
        sources: list[str] = []
        for provider_name, item in tagged:
            if id(item) in kept_ids and provider_name not in sources:
                sources.append(provider_name)

        context.logger.debug(
            "Fan-out merged",
            capability=self.capability.value,
            total_items=len(tagged),
            unique_items=len(kept),
            sources=sources,
        )
        return OrchestratorResult(
            payload=kept,
            confidence=self.confidence_for(kept),
            source=sources[0] if sources else None,
            sources=tuple(sources),
            attempts=tuple(attempts),
        )
