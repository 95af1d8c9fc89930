"""
Shared orchestrator machinery.

An orchestrator call walks the same states regardless of strategy::

    INIT -> FILTER_AVAILABLE -> EXHAUSTED
                             -> DISPATCH -> SUCCESS | CONTINUE -> ... -> TERMINAL

The strategy subclasses only decide what DISPATCH means (one provider after
another, all at once, or all at once and merged). Everything else lives here:
result caching, the per-call timeout race, the overall budget, the attempt
log and the closing ``orchestrator_fallback`` event.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Generic, Iterable, Literal, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from booksource.internal.capabilities import CAPABILITY_CONTRACTS, Capability, CapabilityContract, invoke
from booksource.internal.context import ServiceContext
from booksource.internal.registry import ProviderRegistry, RegisteredProvider
from booksource.util.cache import ResultCache
from booksource.util.exceptions import handle_malformed_response, handle_provider_error

T = TypeVar("T")
R = TypeVar("R", bound="_ResultBase")

DEFAULT_PROVIDER_TIMEOUT = 10.0

AttemptOutcome = Literal["success", "miss", "invalid", "timeout", "error", "skipped"]


class ProviderAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    outcome: AttemptOutcome
    latency_ms: float = 0.0


class _ResultBase(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    confidence: float = Field(default=0.0, ge=0, le=100)
    attempts: tuple[ProviderAttempt, ...] = ()
    cached: bool = False
    """Served from the result cache without calling any provider"""

    @property
    def found(self) -> bool:
        payload = getattr(self, "payload", None)
        if isinstance(payload, list):
            return len(payload) > 0
        return payload is not None

    def successful_providers(self) -> list[str]:
        return []


class OrchestratorResult(_ResultBase, Generic[T]):
    """Outcome of one orchestrator call. ``payload`` is None (or []) when nothing was found."""

    payload: T | None = None
    source: str | None = None
    """Provider that produced the payload"""
    sources: tuple[str, ...] = ()
    """Every provider that contributed, for strategies that combine providers"""

    @classmethod
    def empty(cls, attempts: Iterable[ProviderAttempt] = (), payload: Any = None) -> "OrchestratorResult[T]":
        return cls(payload=payload, confidence=0.0, source=None, attempts=tuple(attempts))

    def successful_providers(self) -> list[str]:
        if self.sources:
            return list(self.sources)
        return [self.source] if self.source else []


class AggregatedResult(_ResultBase, Generic[T]):
    """Record merged field by field from several providers."""

    payload: T | None = None
    sources: tuple[str, ...] = ()
    contributions: dict[str, str] = Field(default_factory=dict)
    """Field name -> provider that supplied it"""

    @classmethod
    def empty(cls, attempts: Iterable[ProviderAttempt] = ()) -> "AggregatedResult[T]":
        return cls(payload=None, confidence=0.0, sources=(), contributions={}, attempts=tuple(attempts))

    def successful_providers(self) -> list[str]:
        return list(self.sources)


def _discard_outcome(task: asyncio.Future[Any]) -> None:
    # Mark a late failure as retrieved.
    if not task.cancelled():
        task.exception()


async def call_with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    On timeout the underlying task is cancelled, its eventual outcome is
    discarded, and :class:`TimeoutError` is raised to the caller.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise

    if not done:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise TimeoutError(f"Provider call exceeded {timeout}s")
    return task.result()


class CallBudget:
    """Overall time budget of one orchestrator call."""

    def __init__(self, total: float | None):
        self._loop = asyncio.get_running_loop()
        self.started = self._loop.time()
        self.deadline = None if total is None else self.started + total

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - self._loop.time()

    def spent(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def per_call(self, timeout: float) -> float:
        remaining = self.remaining()
        return timeout if remaining is None else max(min(timeout, remaining), 0.0)

    def elapsed_ms(self) -> float:
        return round((self._loop.time() - self.started) * 1000, 1)


class BaseOrchestrator(ABC, Generic[R]):
    """
    Common base for every orchestration strategy.

    Args:
        registry: Source of candidate providers.
        capability: The capability this orchestrator serves.
        timeout: Per-provider call timeout in seconds.
        priority_order: Provider names to try first, in this order. Providers
            not listed follow in registration order.
        cache: Optional result cache, consulted according to the context's
            cache policy.
        name: Label used in logs. Defaults to the class name.
    """

    registry: ProviderRegistry
    capability: Capability
    timeout: float
    priority_order: list[str]
    cache: ResultCache[Any] | None
    name: str
    contract: CapabilityContract

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
        self.registry = registry
        self.capability = capability
        self.timeout = timeout
        self.priority_order = list(priority_order or [])
        self.cache = cache
        self.name = name or type(self).__name__
        self.contract = CAPABILITY_CONTRACTS[capability]

    def order(self, providers: Sequence[RegisteredProvider]) -> list[RegisteredProvider]:
        """Explicitly ranked providers first, the rest in registration order."""
        if not self.priority_order:
            return list(providers)
        rank = {name: i for i, name in enumerate(self.priority_order)}
        listed = sorted((p for p in providers if p.name in rank), key=lambda p: rank[p.name])
        unlisted = [p for p in providers if p.name not in rank]
        return listed + unlisted

    @abstractmethod
    def _empty(self, attempts: Sequence[ProviderAttempt]) -> R: ...

    @abstractmethod
    async def _dispatch(
        self,
        request: Any,
        context: ServiceContext,
        providers: list[RegisteredProvider],
        budget: CallBudget,
        attempts: list[ProviderAttempt],
    ) -> R: ...

    def _cache_key(self, request: Any) -> str:
        return request.cache_key()

    async def _call(
        self,
        provider: RegisteredProvider,
        request: Any,
        context: ServiceContext,
        budget: CallBudget,
    ) -> tuple[Any, AttemptOutcome, float]:
        """
        One provider call under the per-call timeout. Returns the value (or
        the capability's miss), the outcome and the latency. Never raises
        except for cancellation.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        timeout = budget.per_call(self.timeout)

        def latency() -> float:
            return round((loop.time() - started) * 1000, 1)

        try:
            value = await call_with_timeout(
                invoke(provider.adapter, self.capability, request, context), timeout
            )
        except TimeoutError:
            context.logger.warning(
                "Provider call timed out",
                provider=provider.name,
                capability=self.capability.value,
                timeout=timeout,
            )
            return self.contract.miss(), "timeout", latency()
        except Exception as e:
            handle_provider_error(e, provider.name, self.capability.value)
            return self.contract.miss(), "error", latency()

        if value is None or (isinstance(value, list) and not value):
            context.logger.debug("Provider returned nothing", provider=provider.name, capability=self.capability.value)
            return self.contract.miss(), "miss", latency()

        value, rejected = self.contract.conform(value)
        if rejected:
            handle_malformed_response(
                provider.name,
                self.capability.value,
                expected=self.contract.response_type.__name__,
                rejected=rejected,
            )
            if value == self.contract.miss():
                return self.contract.miss(), "invalid", latency()
        return value, "success", latency()

    async def execute(self, request: Any, context: ServiceContext) -> R:
        """Run one orchestrated call. Never raises for provider failures."""
        cache_key = self._cache_key(request)
        if self.cache is not None and context.cache_policy.can_read:
            hit = self.cache.get(self.capability.value, cache_key)
            if hit is not None:
                context.logger.debug("Orchestrator cache hit", orchestrator=self.name, key=cache_key)
                return hit.model_copy(update={"cached": True})

        budget = CallBudget(context.timeout)
        providers = self.order(await self.registry.get_available_providers(self.capability, context))
        attempts: list[ProviderAttempt] = []

        if not providers:
            context.logger.warning(
                "No providers available",
                orchestrator=self.name,
                capability=self.capability.value,
            )
            result = self._empty(attempts)
        else:
            result = await self._dispatch(request, context, providers, budget, attempts)
            if not result.found:
                context.logger.warning(
                    "All providers exhausted",
                    orchestrator=self.name,
                    capability=self.capability.value,
                    providers=[p.name for p in providers],
                )

        successful = result.successful_providers()
        context.logger.info(
            "orchestrator_fallback",
            orchestrator=self.name,
            capability=self.capability.value,
            provider_chain=[p.name for p in providers],
            successful_provider=successful[0] if successful else None,
            contributing_providers=successful,
            attempts=len(result.attempts),
            found=result.found,
            latency_ms=budget.elapsed_ms(),
        )

        if result.found and self.cache is not None and context.cache_policy.can_write:
            self.cache.set(self.capability.value, cache_key, result)
        return result

    @staticmethod
    def _skip_remaining(
        providers: Iterable[RegisteredProvider], attempts: list[ProviderAttempt], context: ServiceContext
    ) -> None:
        names = []
        for provider in providers:
            attempts.append(ProviderAttempt(provider=provider.name, outcome="skipped"))
            names.append(provider.name)
        if names:
            context.logger.warning("Time budget spent, skipping providers", providers=names)
