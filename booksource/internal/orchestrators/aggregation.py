import asyncio
from typing import Any, Sequence

from pydantic import BaseModel

from booksource.internal.capabilities import Capability
from booksource.internal.context import ServiceContext
from booksource.internal.orchestrators.base import (
    DEFAULT_PROVIDER_TIMEOUT,
    AggregatedResult,
    BaseOrchestrator,
    CallBudget,
    ProviderAttempt,
)
from booksource.internal.registry import ProviderRegistry, RegisteredProvider
from booksource.util.cache import ResultCache

CONFIDENCE_FIELD = "confidence"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, set, frozenset, dict, str)):
        return len(value) == 0
    return False


class AggregationOrchestrator(BaseOrchestrator[AggregatedResult[Any]]):
    """
    Ask every available provider at once and merge their records field by
    field. The first non-empty value in priority order wins each field, and
    the provider that supplied it is recorded in ``contributions``.

    Confidence defaults to the share of fields that ended up populated.
    """

    merge_fields: list[str]

    def __init__(
        self,
        registry: ProviderRegistry,
        capability: Capability,
        *,
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
        self.merge_fields = [f for f in self.contract.response_type.model_fields if f != CONFIDENCE_FIELD]

    def merge(self, records: list[tuple[str, BaseModel]]) -> tuple[dict[str, Any], dict[str, str]]:
        values: dict[str, Any] = {}
        contributions: dict[str, str] = {}
        for field in self.merge_fields:
            for provider_name, record in records:
                value = getattr(record, field, None)
                if _is_blank(value):
                    continue
                values[field] = value
                contributions[field] = provider_name
                break
        return values, contributions

    def confidence_for(
        self, values: dict[str, Any], contributions: dict[str, str], records: list[tuple[str, BaseModel]]
    ) -> float:
        if not self.merge_fields:
            return 0.0
        return round(len(contributions) / len(self.merge_fields) * 100, 1)

    def _empty(self, attempts: Sequence[ProviderAttempt]) -> AggregatedResult[Any]:
        return AggregatedResult.empty(attempts)

    async def _dispatch(
        self,
        request: Any,
        context: ServiceContext,
        providers: list[RegisteredProvider],
        budget: CallBudget,
        attempts: list[ProviderAttempt],
    ) -> AggregatedResult[Any]:
        if budget.spent():
            self._skip_remaining(providers, attempts, context)
            return self._empty(attempts)

        outcomes = await asyncio.gather(*(self._call(p, request, context, budget) for p in providers))
        records: list[tuple[str, BaseModel]] = []
        for provider, (value, outcome, latency) in zip(providers, outcomes):
            attempts.append(ProviderAttempt(provider=provider.name, outcome=outcome, latency_ms=latency))
            if value is not None:
                records.append((provider.name, value))

        if not records:
            return self._empty(attempts)

        values, contributions = self.merge(records)
        if not contributions:
            return self._empty(attempts)

        confidence = self.confidence_for(values, contributions, records)
        if CONFIDENCE_FIELD in self.contract.response_type.model_fields:
            values[CONFIDENCE_FIELD] = confidence
        payload = self.contract.response_type(**values)

        context.logger.debug(
            "Records merged",
            capability=self.capability.value,
            providers=[name for name, _ in records],
            contributions=contributions,
            confidence=confidence,
        )
        return AggregatedResult(
            payload=payload,
            confidence=confidence,
            sources=tuple(name for name, _ in records),
            contributions=contributions,
            attempts=tuple(attempts),
        )
