import asyncio
from typing import Any, Iterable, Sequence

from booksource.internal.capabilities import ProviderType
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import (
    BaseOrchestrator,
    CallBudget,
    OrchestratorResult,
    ProviderAttempt,
)
from booksource.internal.registry import RegisteredProvider


class SequentialFallbackOrchestrator(BaseOrchestrator[OrchestratorResult[Any]]):
    """
    Try providers one at a time in priority order and return the first
    result that passes :meth:`validate`. No provider is called twice and
    nothing is called once a result has been accepted.

    With ``stop_on_first_success=False`` every provider is still called one
    after another, and :meth:`select_best` picks among the valid results.
    """

    stop_on_first_success: bool

    def __init__(self, *args: Any, stop_on_first_success: bool = True, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.stop_on_first_success = stop_on_first_success

    def validate(self, value: Any, request: Any, context: ServiceContext) -> bool:
        return True

    def confidence_for(self, value: Any, request: Any) -> float:
        confidence = getattr(value, "confidence", None)
        return float(confidence) if confidence is not None else 100.0

    def select_best(self, candidates: list[OrchestratorResult[Any]]) -> OrchestratorResult[Any]:
        """Highest confidence wins; ties go to the higher-priority provider."""
        best = candidates[0]
        for candidate in candidates[1:]:
            if candidate.confidence > best.confidence:
                best = candidate
        return best

    def _empty(self, attempts: Sequence[ProviderAttempt]) -> OrchestratorResult[Any]:
        return OrchestratorResult.empty(attempts, payload=self.contract.miss())

    async def _dispatch(
        self,
        request: Any,
        context: ServiceContext,
        providers: list[RegisteredProvider],
        budget: CallBudget,
        attempts: list[ProviderAttempt],
    ) -> OrchestratorResult[Any]:
        accepted: list[OrchestratorResult[Any]] = []

        for index, provider in enumerate(providers):
            if budget.spent():
                self._skip_remaining(providers[index:], attempts, context)
                break

            value, outcome, latency = await self._call(provider, request, context, budget)
            if outcome == "success" and not self.validate(value, request, context):
                context.logger.info(
                    "Provider result rejected by validation",
                    provider=provider.name,
                    capability=self.capability.value,
                )
                outcome = "invalid"
            attempts.append(ProviderAttempt(provider=provider.name, outcome=outcome, latency_ms=latency))

            if outcome != "success":
                continue

            context.logger.debug(
                "Provider succeeded",
                provider=provider.name,
                capability=self.capability.value,
                position=index,
            )
            accepted.append(
                OrchestratorResult(
                    payload=value,
                    confidence=self.confidence_for(value, request),
                    source=provider.name,
                )
            )
            if self.stop_on_first_success:
                break

        if not accepted:
            return self._empty(attempts)
        best = accepted[0] if len(accepted) == 1 else self.select_best(accepted)
        return best.model_copy(update={"attempts": tuple(attempts)})

    async def execute_many(
        self, requests: Iterable[Any], context: ServiceContext
    ) -> dict[str, OrchestratorResult[Any]]:
        """Run :meth:`execute` for several requests concurrently, keyed by request cache key."""
        requests = list(requests)
        results = await asyncio.gather(*(self.execute(r, context) for r in requests))
        return {r.cache_key(): result for r, result in zip(requests, results)}


class FreeFirstOrchestrator(SequentialFallbackOrchestrator):
    """Free providers always go before paid and AI ones; the explicit order ranks within each tier."""

    def order(self, providers: Sequence[RegisteredProvider]) -> list[RegisteredProvider]:
        ranked = super().order(providers)
        return [p for p in ranked if p.provider_type == ProviderType.FREE] + [
            p for p in ranked if p.provider_type != ProviderType.FREE
        ]


class PaidFirstOrchestrator(SequentialFallbackOrchestrator):
    """Paid providers first unless an explicit order is configured."""

    def order(self, providers: Sequence[RegisteredProvider]) -> list[RegisteredProvider]:
        if self.priority_order:
            return super().order(providers)
        return [p for p in providers if p.provider_type == ProviderType.PAID] + [
            p for p in providers if p.provider_type != ProviderType.PAID
        ]
